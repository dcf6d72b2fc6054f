"""rustcheck - compile-check Rust snippets in throwaway cargo projects."""

from rustcheck.checker import RustChecker
from rustcheck.config import Config
from rustcheck.diagnostics import DiagnosticParser
from rustcheck.exceptions import (
    CapacityError,
    ConfigError,
    InvalidDependencyError,
    InvocationError,
    InvocationTimeoutError,
    RustCheckError,
    SetupError,
)
from rustcheck.invoker import ToolInvoker, ToolOutput
from rustcheck.models import (
    CheckMode,
    CheckRequest,
    CheckResponse,
    CompilationError,
    CompilationResult,
    Dependency,
    ErrorLevel,
    SourceSpan,
)
from rustcheck.observability import (
    CheckContext,
    configure_logging,
    get_logger,
    register_metric_callback,
)
from rustcheck.sandbox import Sandbox, SandboxManager
from rustcheck.strategies import CheckStrategy, DependencyCheck, FullCheck, QuickCheck

__version__ = "0.1.0"
__all__ = [
    # Core
    "Config",
    "RustChecker",
    # Components
    "CheckStrategy",
    "DependencyCheck",
    "DiagnosticParser",
    "FullCheck",
    "QuickCheck",
    "Sandbox",
    "SandboxManager",
    "ToolInvoker",
    "ToolOutput",
    # Models
    "CheckMode",
    "CheckRequest",
    "CheckResponse",
    "CompilationError",
    "CompilationResult",
    "Dependency",
    "ErrorLevel",
    "SourceSpan",
    # Errors
    "CapacityError",
    "ConfigError",
    "InvalidDependencyError",
    "InvocationError",
    "InvocationTimeoutError",
    "RustCheckError",
    "SetupError",
    # Observability
    "CheckContext",
    "configure_logging",
    "get_logger",
    "register_metric_callback",
]
