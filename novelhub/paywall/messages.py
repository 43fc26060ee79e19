"""Тексты отказа для читателя (UI платформы на вьетнамском)."""

LOGIN_TO_READ_CHAPTER = "Vui lòng đăng nhập để đọc chương này."
LOGIN_TO_ACCESS = "Vui lòng đăng nhập để truy cập nội dung này."
DRAFT_UNAVAILABLE = "Chương này đang ở chế độ nháp và không khả dụng cho người dùng."
NO_PERMISSION = "Bạn không có quyền truy cập nội dung này."

PAID_CHAPTER = "Chương này yêu cầu thanh toán {price} 🌾 để truy cập hoặc bạn có thể thuê tập."
PAID_MODULE = (
    "Tập này yêu cầu thanh toán {module_balance} 🌾 để truy cập "
    "hoặc bạn có thể thuê tập với giá {rent_balance} 🌾."
)


def paid_chapter(price: int) -> str:
    return PAID_CHAPTER.format(price=price or 0)


def paid_module(module_balance: int, rent_balance: int) -> str:
    return PAID_MODULE.format(module_balance=module_balance or 0, rent_balance=rent_balance or 0)
