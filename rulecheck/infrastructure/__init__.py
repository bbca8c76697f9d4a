"""Infrastructure layer exports."""

from .cache import RecognitionCache
from .inference import RuleCheckClient, configure_rule_client, get_rule_client, reset_rule_client
from .ocr import OCRClient, OCRExtractionResult, configure_ocr_client, get_ocr_client, reset_ocr_client
from .progress import ProgressRegistry, ProgressStore, Subscription

__all__ = [
    "OCRClient",
    "OCRExtractionResult",
    "ProgressRegistry",
    "ProgressStore",
    "RecognitionCache",
    "RuleCheckClient",
    "Subscription",
    "configure_ocr_client",
    "configure_rule_client",
    "get_ocr_client",
    "get_rule_client",
    "reset_ocr_client",
    "reset_rule_client",
]
