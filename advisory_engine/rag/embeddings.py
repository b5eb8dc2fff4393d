from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings

from advisory_engine.app.settings import settings


def default_embeddings() -> Embeddings:
    # Only pass api_key if it is set, otherwise let langchain-openai
    # resolve OPENAI_API_KEY from the environment.
    kwargs = {
        "model": settings.embedding_model,
        "dimensions": settings.embedding_dimensions,
        "timeout": settings.request_timeout,
    }
    if settings.openai_api_key:
        kwargs["api_key"] = settings.openai_api_key
    return OpenAIEmbeddings(**kwargs)
