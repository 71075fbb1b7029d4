from .certificates import (
    CertificateError,
    CertificateManager,
    CertificationCheck,
    validate_certification,
)
from .cli import build_arg_parser
from .console import run_console_session
from .generator import QuestionGenerator, chunk_counts, generate_quiz
from .models import (
    SUPPORTED_LANGUAGES,
    AnswerRecord,
    AppSettings,
    Certificate,
    Question,
    QuestionSet,
    QuizConfig,
    QuizRecord,
    QuizSession,
    validate_quiz_config,
)
from .navigation import NavigationState, QuizNavigation, SubmitResult
from .orchestrator import SessionOrchestrator
from .parsing import (
    GenerationError,
    MalformedResponseError,
    QuizGenerationError,
    RetriesExhaustedError,
    TransientGenerationError,
)

__all__ = [
    "build_arg_parser",
    "CertificateError",
    "CertificateManager",
    "CertificationCheck",
    "validate_certification",
    "run_console_session",
    "QuestionGenerator",
    "chunk_counts",
    "generate_quiz",
    "SUPPORTED_LANGUAGES",
    "AnswerRecord",
    "AppSettings",
    "Certificate",
    "Question",
    "QuestionSet",
    "QuizConfig",
    "QuizRecord",
    "QuizSession",
    "validate_quiz_config",
    "NavigationState",
    "QuizNavigation",
    "SubmitResult",
    "SessionOrchestrator",
    "GenerationError",
    "MalformedResponseError",
    "QuizGenerationError",
    "RetriesExhaustedError",
    "TransientGenerationError",
]
