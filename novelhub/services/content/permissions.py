"""Staff checks for content mutations: admin, moderator, or a pj_user listed on the novel."""
from novelhub.core.exceptions import PermissionDeniedError
from novelhub.models.novel import Novel
from novelhub.models.user import User
from novelhub.paywall.models import Role
from novelhub.paywall.roster import is_listed


def can_manage_novel(user: User | None, novel: Novel) -> bool:
    if user is None:
        return False
    role = Role.parse(user.role)
    if role in (Role.ADMIN, Role.MODERATOR):
        return True
    if role == Role.PJ_USER:
        return is_listed(novel.active_pj_user, user.id, user.username)
    return False


def require_novel_staff(user: User | None, novel: Novel) -> Role:
    if not can_manage_novel(user, novel):
        raise PermissionDeniedError(
            "Bạn không có quyền quản lý truyện này.",
            {"novel_id": novel.id, "user_id": getattr(user, "id", None)},
        )
    return Role.parse(user.role)


def require_admin(user: User | None) -> None:
    if user is None or Role.parse(user.role) != Role.ADMIN:
        raise PermissionDeniedError(
            "Chỉ admin mới có thể thực hiện thao tác này.",
            {"user_id": getattr(user, "id", None)},
        )
