"""
Error Handling Module
Typed failures raised by the target-size search and centralized categorization
used by the CLI and HTTP boundary to log and translate them.
"""

import logging
import threading
from collections import deque
from typing import Deque, Dict, Any, List, Optional
from dataclasses import dataclass
from enum import Enum

logger = logging.getLogger(__name__)


class SizeFitError(Exception):
    """Base class for every failure the search core reports to its callers"""


class InvalidTargetError(SizeFitError):
    """Target size is missing, unparsable or not positive"""


class InvalidParameterError(SizeFitError):
    """A conversion or resize parameter (width, height, fps) is unusable"""


class UnsupportedFormatError(SizeFitError):
    """File extension or content type outside the supported set"""


class ProbeError(SizeFitError):
    """Source metadata could not be read"""


class EncodeError(SizeFitError):
    """A single codec backend invocation failed"""

    def __init__(self, message: str, params: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.params = params or {}


class CapacityError(SizeFitError):
    """The search pool is saturated and the request was not admitted"""


class ErrorCategory(Enum):
    """Categories of processing errors for handling and reporting"""
    INVALID_TARGET = "invalid_target"
    INVALID_PARAMETER = "invalid_parameter"
    UNSUPPORTED_FORMAT = "unsupported_format"
    PROBE = "probe"
    ENCODER = "encoder"
    CAPACITY = "capacity"
    TIMEOUT = "timeout"
    PERMISSION = "permission"
    GENERAL = "general"

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS.get(self, 500)


_HTTP_STATUS = {
    ErrorCategory.INVALID_TARGET: 400,
    ErrorCategory.INVALID_PARAMETER: 400,
    ErrorCategory.UNSUPPORTED_FORMAT: 415,
    ErrorCategory.PROBE: 422,
    ErrorCategory.CAPACITY: 503,
}


@dataclass
class ProcessingError:
    """Structured representation of a processing error"""
    category: ErrorCategory
    message: str
    file_path: str
    exception_type: str
    severity: str  # 'warning', 'error', 'critical'
    suggestions: List[str]
    retryable: bool = True
    context: Optional[str] = None

    def get_short_description(self) -> str:
        return f"{self.category.value}: {self.message}"

    def get_detailed_description(self) -> str:
        base = f"Error in {self.file_path}: {self.message}"
        if self.context:
            base += f" (Context: {self.context})"

        if self.suggestions:
            base += "\nSuggestions:\n" + "\n".join(f"  • {s}" for s in self.suggestions)

        return base


DEFAULT_ERROR_HISTORY = 100

# (category, severity, retryable) for each typed failure
_TYPED_CATEGORIES = (
    (InvalidTargetError, ErrorCategory.INVALID_TARGET, 'warning', False),
    (InvalidParameterError, ErrorCategory.INVALID_PARAMETER, 'warning', False),
    (UnsupportedFormatError, ErrorCategory.UNSUPPORTED_FORMAT, 'warning', False),
    (ProbeError, ErrorCategory.PROBE, 'error', False),
    (EncodeError, ErrorCategory.ENCODER, 'error', True),
    (CapacityError, ErrorCategory.CAPACITY, 'warning', True),
)


class ErrorHandler:
    """Centralized error categorization for requests handled by the dispatcher.

    Counters cover every handled error; only the most recent max_history
    errors are kept. Safe to share between request threads.
    """

    def __init__(self, max_history: int = DEFAULT_ERROR_HISTORY):
        self.error_counts = {category: 0 for category in ErrorCategory}
        self.retryable_count = 0
        self.processed_errors: Deque[ProcessingError] = deque(maxlen=max_history)
        self._lock = threading.Lock()

    def categorize_error(self, exception: Exception, file_path: str,
                         context: str = None) -> ProcessingError:
        """Categorize an exception into a structured ProcessingError"""
        error_msg = str(exception)
        exception_type = type(exception).__name__

        for error_class, category, severity, retryable in _TYPED_CATEGORIES:
            if isinstance(exception, error_class):
                return ProcessingError(
                    category=category,
                    message=error_msg,
                    file_path=file_path,
                    exception_type=exception_type,
                    severity=severity,
                    suggestions=self.get_category_suggestions(category),
                    retryable=retryable,
                    context=context,
                )

        # Pattern-based categorization for untyped errors
        error_lower = error_msg.lower()

        if isinstance(exception, TimeoutError) or 'timed out' in error_lower or 'timeout' in error_lower:
            category, severity, retryable = ErrorCategory.TIMEOUT, 'warning', True
        elif isinstance(exception, PermissionError) or 'permission' in error_lower:
            category, severity, retryable = ErrorCategory.PERMISSION, 'error', False
        elif 'ffmpeg' in error_lower or 'encoder' in error_lower:
            category, severity, retryable = ErrorCategory.ENCODER, 'error', True
        else:
            category, severity, retryable = ErrorCategory.GENERAL, 'error', True

        return ProcessingError(
            category=category,
            message=error_msg,
            file_path=file_path,
            exception_type=exception_type,
            severity=severity,
            suggestions=self.get_category_suggestions(category),
            retryable=retryable,
            context=context,
        )

    def handle_error(self, exception: Exception, file_path: str,
                     context: str = None) -> ProcessingError:
        """Categorize an error, record it and log according to severity"""
        error = self.categorize_error(exception, file_path, context)
        with self._lock:
            self.processed_errors.append(error)
            self.error_counts[error.category] += 1
            if error.retryable:
                self.retryable_count += 1

        if error.severity == 'critical':
            logger.error(f"CRITICAL ERROR: {error.get_short_description()}")
            logger.error(f"Details: {error.get_detailed_description()}")
        elif error.severity == 'error':
            logger.error(f"ERROR: {error.get_short_description()}")
            logger.info(f"Suggestions: {'; '.join(error.suggestions[:2])}")
        else:
            logger.warning(f"WARNING: {error.get_short_description()}")

        return error

    def get_error_summary(self) -> Dict[str, Any]:
        with self._lock:
            category_counts = {cat.value: count for cat, count in self.error_counts.items() if count > 0}
            retryable_count = self.retryable_count
        total_errors = sum(category_counts.values())
        if total_errors == 0:
            return {'total_errors': 0, 'categories': {}}

        return {
            'total_errors': total_errors,
            'categories': category_counts,
            'most_common_category': max(category_counts.items(), key=lambda x: x[1])[0],
            'retryable_errors': retryable_count,
            'non_retryable_errors': total_errors - retryable_count,
        }

    @staticmethod
    def get_category_suggestions(category: ErrorCategory) -> List[str]:
        """Get specific suggestions for an error category"""
        suggestions_map = {
            ErrorCategory.INVALID_TARGET: [
                "Pass a target size greater than 0",
                "Use --target-mb with a decimal value such as 0.5",
            ],
            ErrorCategory.INVALID_PARAMETER: [
                "Pass width, height and fps as positive whole numbers",
                "Leave height empty to keep the aspect ratio",
            ],
            ErrorCategory.UNSUPPORTED_FORMAT: [
                "Only JPG, PNG, WEBP or GIF files are supported",
                "Convert the file to a supported format first",
            ],
            ErrorCategory.PROBE: [
                "Check file integrity",
                "Try re-exporting the image",
            ],
            ErrorCategory.ENCODER: [
                "Check that FFmpeg is installed and on PATH",
                "Retry with --on-encode-failure skip for animated files",
            ],
            ErrorCategory.CAPACITY: [
                "Retry the request later",
                "Raise search_pool.max_workers or max_queued",
            ],
            ErrorCategory.TIMEOUT: [
                "Raise animated.encode_timeout_seconds",
                "Use a smaller source file",
            ],
            ErrorCategory.PERMISSION: [
                "Check file permissions",
                "Ensure the workspace directory is writable",
            ],
        }

        return suggestions_map.get(category, ["Check logs for more details", "Retry operation"])
