"""Fixed user-facing messages in every supported answer language."""

from .config import config

SUPPORTED_LANGUAGES = ("en", "vi")

MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "no_info": (
            "I could not find information related to your question in the "
            "uploaded document. Please try rephrasing the question or upload a "
            "document that contains the relevant information."
        ),
        "timeout": (
            "Sorry, processing your question is taking longer than expected. "
            "Please try again with a shorter question."
        ),
        "rate_limit": (
            "I'm sorry, the system is currently overloaded. "
            "Please try again in a few minutes."
        ),
        "config": (
            "Sorry, there is a problem with the system configuration. "
            "Please contact the administrator."
        ),
        "generic": (
            "I'm sorry, but I ran into a technical problem while processing "
            "your question. Please try again later."
        ),
        "truncated": "...\n\n[The answer has been shortened]",
        "disclaimer": (
            "\n\n*Note: This answer is based on the information in the uploaded "
            "document. If you need more detail, please consult the original "
            "document directly.*"
        ),
        "upload_first": (
            "Please upload a document before asking questions. "
            "Use the upload button to get started."
        ),
        "processing": (
            "Your document is still being processed. "
            "Please wait a moment and ask again."
        ),
        "invalid_question": "Please provide a valid question.",
        "question_too_long": (
            "Your question is too long. Please shorten it and try again."
        ),
        "external_unavailable": (
            "Sorry, I can't reach the external answering service right now."
        ),
        "degraded_warning": (
            "The document was processed, but semantic search is unavailable. "
            "Answers will use keyword search only."
        ),
        "search_failed": (
            "Sorry, I couldn't search the uploaded document. Please try again."
        ),
    },
    "vi": {
        "no_info": (
            "Tôi không tìm thấy thông tin liên quan trong tài liệu đã tải lên để "
            "trả lời câu hỏi của bạn. Vui lòng thử diễn đạt lại câu hỏi hoặc tải "
            "lên tài liệu khác có chứa thông tin liên quan."
        ),
        "timeout": (
            "Xin lỗi, việc xử lý câu hỏi đang mất nhiều thời gian hơn dự kiến. "
            "Vui lòng thử lại với câu hỏi ngắn gọn hơn."
        ),
        "rate_limit": (
            "Tôi xin lỗi, hiện tại hệ thống đang quá tải. "
            "Vui lòng thử lại sau ít phút."
        ),
        "config": (
            "Xin lỗi, có vấn đề với cấu hình hệ thống. "
            "Vui lòng liên hệ quản trị viên."
        ),
        "generic": (
            "Tôi xin lỗi, nhưng tôi đang gặp sự cố kỹ thuật khi xử lý câu hỏi "
            "của bạn. Vui lòng thử lại sau."
        ),
        "truncated": "...\n\n[Câu trả lời đã được rút gọn]",
        "disclaimer": (
            "\n\n*Lưu ý: Câu trả lời này dựa trên thông tin có trong tài liệu đã "
            "tải lên. Nếu bạn cần thông tin chi tiết hơn, vui lòng tham khảo trực "
            "tiếp tài liệu gốc.*"
        ),
        "upload_first": (
            "Vui lòng tải lên tài liệu trước khi đặt câu hỏi. "
            "Sử dụng nút tải lên để bắt đầu."
        ),
        "processing": (
            "Tài liệu của bạn vẫn đang được xử lý. "
            "Vui lòng đợi một lát rồi hỏi lại."
        ),
        "invalid_question": "Vui lòng nhập một câu hỏi hợp lệ.",
        "question_too_long": (
            "Câu hỏi của bạn quá dài. Vui lòng rút gọn và thử lại."
        ),
        "external_unavailable": (
            "Xin lỗi, tôi không thể liên hệ dịch vụ bên ngoài lúc này."
        ),
        "degraded_warning": (
            "Tài liệu đã được xử lý nhưng tìm kiếm ngữ nghĩa không khả dụng. "
            "Câu trả lời sẽ chỉ dùng tìm kiếm theo từ khóa."
        ),
        "search_failed": (
            "Xin lỗi, tôi không thể tìm kiếm trong tài liệu đã tải lên. "
            "Vui lòng thử lại."
        ),
    },
}

# Lowercase markers of an answer that declines rather than answers.
GENERIC_PHRASES: dict[str, tuple[str, ...]] = {
    "en": (
        "i can't",
        "i cannot",
        "i'm sorry",
        "no information",
        "i need more information",
        "unable to answer",
    ),
    "vi": (
        "tôi không thể",
        "xin lỗi",
        "không có thông tin",
        "tôi cần thêm thông tin",
        "không thể trả lời",
    ),
}


def resolve_language(language: str | None = None) -> str:
    """Return a supported language code, falling back to English."""  # noqa: DOC201
    language = (language or config.ANSWER_LANGUAGE or "en").lower()
    return language if language in SUPPORTED_LANGUAGES else "en"


def get_message(key: str, language: str | None = None) -> str:
    """Look up a fixed message.

    Returns:
        The message text in ``language`` (default ANSWER_LANGUAGE).

    Raises:
        KeyError: If no message is registered under ``key``.
    """
    return MESSAGES[resolve_language(language)][key]
