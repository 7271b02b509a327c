from typing import Optional

from .. import config
from ..logging import get_logger
from .client import ExtractionClient, OpenAIVisionTransport, OpenRouterTransport
from .ocr import TesseractExtractor

LOG = get_logger("extraction")


class MissingCredentialsError(RuntimeError):
    """The selected backend needs an API key that is not configured."""


def build_extractor(backend: Optional[str] = None, *, dotenv_dir: str = ".", optimize_images: bool = True):
    """Return an extractor for `backend` (or SUPPLYLIST_BACKEND) configured from env/.env."""
    name = (backend or config.load_backend(dotenv_dir)).lower()
    timeout = config.load_extraction_timeout(dotenv_dir)

    if name == "openai":
        api_key = config.load_openai(dotenv_dir)
        if not api_key:
            raise MissingCredentialsError("OPENAI_API_KEY is not set (env or .env)")
        transport = OpenAIVisionTransport(
            api_key,
            config.load_openai_model(dotenv_dir),
            base_url=config.load_openai_base_url(dotenv_dir),
            timeout=timeout,
        )
    elif name == "openrouter":
        api_key = config.load_openrouter(dotenv_dir)
        if not api_key:
            raise MissingCredentialsError("OPEN_ROUTER_API_KEY is not set (env or .env)")
        transport = OpenRouterTransport(api_key, config.load_openrouter_model(dotenv_dir), timeout=timeout)
    elif name == "tesseract":
        LOG.info("Using local Tesseract OCR backend")
        return TesseractExtractor(optimize_images=False)
    else:
        raise ValueError(f"Unknown extraction backend {name!r}; choose one of {', '.join(config.BACKENDS)}")

    LOG.info(f"Using {name} extraction backend (model={transport.model}, timeout={timeout:.0f}s)")
    return ExtractionClient(transport, optimize_images=optimize_images)
