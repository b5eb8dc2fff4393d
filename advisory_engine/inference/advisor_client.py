"""Text-generation boundary: turns an assembled context plus question into a reply."""
import logging
from typing import Any, Dict

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.prompts import ChatPromptTemplate
from langchain_openai import ChatOpenAI

from advisory_engine.app.errors import GenerationError
from advisory_engine.app.settings import settings
from advisory_engine.prompts.advisor_prompt import ADVISOR_SYSTEM, ADVISOR_USER_TEMPLATE
from advisory_engine.tools.openai_retry import retry_with_backoff

logger = logging.getLogger(__name__)


def _llm() -> ChatOpenAI:
    # Only pass api_key if it is set, otherwise let langchain-openai
    # resolve OPENAI_API_KEY from the environment.
    kwargs: Dict[str, Any] = {
        "model": settings.model_name,
        "temperature": 0.2,
        "timeout": settings.request_timeout,
        "max_tokens": settings.response_max_tokens,
    }
    if settings.openai_api_key:
        kwargs["api_key"] = settings.openai_api_key
    return ChatOpenAI(**kwargs)


@retry_with_backoff(max_retries=3, initial_delay=1.0, max_delay=30.0)
def _invoke_llm_with_retry(llm: BaseChatModel, messages: list) -> str:
    response = llm.invoke(messages)
    return response.content


class AdvisorClient:
    def __init__(self, llm: BaseChatModel | None = None):
        self._llm = llm
        self.prompt = ChatPromptTemplate.from_messages(
            [("system", ADVISOR_SYSTEM), ("user", ADVISOR_USER_TEMPLATE)]
        )

    @property
    def llm(self) -> BaseChatModel:
        if self._llm is None:
            self._llm = _llm()
        return self._llm

    def reply(self, context: str, question: str) -> str:
        messages = self.prompt.format_messages(context=context, question=question)
        try:
            answer = _invoke_llm_with_retry(self.llm, messages)
        except Exception as exc:  # noqa: BLE001
            logger.error("Advisor generation failed: %s", exc, exc_info=True)
            raise GenerationError("Response generation failed; please try again.") from exc
        if not answer or not answer.strip():
            raise GenerationError("Model returned an empty reply")
        return answer
