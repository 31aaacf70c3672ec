"""Grounded answer generation from retrieved document context."""

from __future__ import annotations

import asyncio

from .config import config
from .embeddings import ProviderHandle
from .errors import (
    ErrorType,
    ProviderErrorCategory,
    ProviderInitError,
    classify_provider_error,
)
from .messages import GENERIC_PHRASES, get_message, resolve_language
from .models import Err, Ok, Result
from .search import NO_RESULTS_SENTINEL

logger = config.get_logger(__name__)

_PROMPTS = {
    "en": (
        "You are an assistant that answers questions about an uploaded document.\n\n"
        "TASK: Answer the user's question accurately and ONLY from the information "
        "provided from the uploaded document.\n\n"
        "INFORMATION FROM THE DOCUMENT:\n{context}\n\n"
        "USER QUESTION:\n{question}\n\n"
        "ANSWER GUIDELINES:\n"
        '1. Use only the information in "INFORMATION FROM THE DOCUMENT" above\n'
        "2. Answer in English, clearly and in detail\n"
        "3. If the document does not contain enough information to answer fully, "
        "say so explicitly\n"
        "4. Quote the document directly when helpful\n"
        "5. Do not make up information that is not in the document\n"
        "6. If no relevant information is found, honestly say the document does "
        "not contain it\n\n"
        "ANSWER:"
    ),
    "vi": (
        "Bạn là trợ lý trả lời câu hỏi về tài liệu đã được tải lên.\n\n"
        "NHIỆM VỤ: Trả lời câu hỏi của người dùng dựa chính xác và CHỈ dựa vào "
        "thông tin được cung cấp từ tài liệu đã tải lên.\n\n"
        "THÔNG TIN TỪ TÀI LIỆU:\n{context}\n\n"
        "CÂU HỎI CỦA NGƯỜI DÙNG:\n{question}\n\n"
        "HƯỚNG DẪN TRẢ LỜI:\n"
        '1. Chỉ sử dụng thông tin có trong phần "THÔNG TIN TỪ TÀI LIỆU" ở trên\n'
        "2. Trả lời bằng tiếng Việt, rõ ràng và chi tiết\n"
        "3. Nếu tài liệu không có đủ thông tin để trả lời đầy đủ, hãy nêu rõ "
        "điều này\n"
        "4. Trích dẫn trực tiếp từ tài liệu khi cần thiết\n"
        "5. Không bịa đặt thông tin không có trong tài liệu\n"
        "6. Nếu không tìm thấy thông tin liên quan, thành thật nói rằng không có "
        "thông tin trong tài liệu\n\n"
        "CÂU TRẢ LỜI:"
    ),
}


class AnswerGenerator:
    """Turns a question and a context block into a grounded answer.

    Every failure is returned as an ``Err`` whose message is a fixed apology
    for its category; raw provider text only goes to the log and ``detail``.
    """

    def __init__(
        self,
        provider_handle: ProviderHandle,
        language: str | None = None,
        timeout: float | None = None,
        max_question_length: int | None = None,
        max_context_length: int | None = None,
        max_response_length: int | None = None,
    ) -> None:
        """Initialize the generator.

        Args:
            provider_handle: Shared lazily-initialized model provider.
            language: Answer language (``en`` or ``vi``). Defaults to
                config.ANSWER_LANGUAGE.
            timeout: Seconds allowed for one model call.
            max_question_length: Questions are cut to this many characters.
            max_context_length: Context blocks are cut to this many characters.
            max_response_length: Longer answers are truncated with a notice.
        """
        self.provider_handle = provider_handle
        self.language = resolve_language(language)
        self.timeout = config.LLM_TIMEOUT if timeout is None else timeout
        self.max_question_length = (
            max_question_length or config.MAX_QUESTION_LENGTH
        )
        self.max_context_length = max_context_length or config.MAX_CONTEXT_LENGTH
        self.max_response_length = (
            max_response_length or config.MAX_RESPONSE_LENGTH
        )

    def message(self, key: str) -> str:
        return get_message(key, self.language)

    def build_prompt(self, question: str, context: str) -> str:
        """Build the grounding prompt in the generator's language.

        Returns:
            str: Prompt instructing the model to answer only from ``context``.
        """
        return _PROMPTS[self.language].format(context=context, question=question)

    def is_generic_response(self, response: str) -> bool:
        """Check whether an answer declines instead of answering.

        Returns:
            True if the lowercased answer contains a known generic phrase.
        """
        lowered = response.lower()
        return any(phrase in lowered for phrase in GENERIC_PHRASES[self.language])

    def clean_response(self, response: str) -> str:
        """Trim the answer and cap its length.

        Returns:
            The trimmed answer, truncated with a notice when over the limit.
        """
        cleaned = response.strip()
        if len(cleaned) > self.max_response_length:
            logger.info(
                "Truncating model response from %d to %d characters",
                len(cleaned),
                self.max_response_length,
            )
            return cleaned[: self.max_response_length] + self.message("truncated")
        return cleaned

    def _error_for(self, error: BaseException) -> Err:
        category = classify_provider_error(error)
        if category is ProviderErrorCategory.TIMEOUT:
            error_type = ErrorType.TIMEOUT_ERROR
        else:
            error_type = ErrorType.LLM_ERROR
        return Err(
            error_type,
            self.message(str(category)),
            detail=str(error),
            category=category,
        )

    async def generate(self, question: str, context: str) -> Result[str]:
        """Answer ``question`` from ``context`` with one model call.

        An empty context, or the "nothing found" sentinel, is answered with a
        fixed message and the model is never called.

        Returns:
            Ok with the answer text, or Err carrying a user-safe apology.
        """
        trimmed_question = question.strip()[: self.max_question_length]
        trimmed_context = context[: self.max_context_length]

        if (
            not trimmed_context.strip()
            or trimmed_context.strip() == NO_RESULTS_SENTINEL
        ):
            logger.info("No usable context; skipping model call")
            return Ok(self.message("no_info"))

        try:
            provider = await self.provider_handle.get()
        except ProviderInitError as exc:
            message = (
                self.message("rate_limit")
                if exc.category is ProviderErrorCategory.RATE_LIMIT
                else self.message("config")
            )
            return Err(
                ErrorType.API_ERROR,
                message,
                detail=exc.message,
                category=exc.category,
            )

        prompt = self.build_prompt(trimmed_question, trimmed_context)
        try:
            async with asyncio.timeout(self.timeout):
                response = await provider.complete(prompt)
        except TimeoutError:
            logger.warning("Model call exceeded %.1f seconds", self.timeout)
            return Err(
                ErrorType.TIMEOUT_ERROR,
                self.message("timeout"),
                detail=f"Model response timeout after {self.timeout}s",
                category=ProviderErrorCategory.TIMEOUT,
            )
        except Exception as exc:
            logger.exception("Model call failed")
            return self._error_for(exc)

        if not response or not response.strip():
            return Err(
                ErrorType.LLM_ERROR,
                self.message("generic"),
                detail="Empty response from model",
            )

        answer = self.clean_response(response)
        if self.is_generic_response(answer):
            answer += self.message("disclaimer")
        return Ok(answer)
