"""Certificates and their persistent question banks."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Sequence

from ..storage.bridge import StorageBridge
from .generator import QuestionGenerator
from .models import (
    Certificate,
    QuestionSet,
    Question,
    QuizConfig,
    new_id,
    validate_quiz_config,
)
from .parsing import MalformedResponseError, extract_json

__all__ = [
    "CertificateError",
    "CertificationCheck",
    "CertificateManager",
    "fallback_validation",
    "validate_certification",
]

logger = logging.getLogger(__name__)

_CONFIDENCE_LEVELS = ("high", "medium", "low")
_DEFAULT_SUGGESTIONS = (
    "AWS Certified Solutions Architect",
    "CompTIA Security+",
    "Google Cloud Professional Cloud Architect",
)


class CertificateError(RuntimeError):
    """Raised for unknown, duplicate or invalid certificates."""


@dataclass(frozen=True)
class CertificationCheck:
    is_valid: bool
    confidence: str
    corrected_name: str = ""
    description: str = ""
    suggestions: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_payload(cls, payload: Any) -> "CertificationCheck":
        if not isinstance(payload, Mapping):
            raise MalformedResponseError("Invalid response structure")
        is_valid = payload.get("isValid")
        confidence = payload.get("confidence")
        if not isinstance(is_valid, bool) or confidence not in _CONFIDENCE_LEVELS:
            raise MalformedResponseError("Invalid response structure")
        suggestions = payload.get("suggestions") or []
        if not isinstance(suggestions, list):
            suggestions = []
        return cls(
            is_valid=is_valid,
            confidence=confidence,
            corrected_name=str(payload.get("correctedName") or ""),
            description=str(payload.get("description") or ""),
            suggestions=tuple(str(item) for item in suggestions),
        )


def fallback_validation(name: str) -> CertificationCheck:
    """Keyword heuristics used when the model's answer is unusable."""

    lowered = name.lower()
    if "aws" in lowered and ("architect" in lowered or "saa" in lowered):
        return CertificationCheck(
            is_valid=True,
            confidence="medium",
            corrected_name="AWS Certified Solutions Architect Associate",
            description=(
                "Cloud architecture certification for AWS. Validates "
                "distributed system design skills for developers."
            ),
        )
    if "google" in lowered or "gcp" in lowered or "cloud architect" in lowered:
        return CertificationCheck(
            is_valid=True,
            confidence="medium",
            corrected_name="Google Cloud Professional Cloud Architect",
            description=(
                "Cloud architecture certification for Google Cloud Platform. "
                "Validates cloud solution design skills."
            ),
        )
    if "comptia" in lowered or "security+" in lowered or "sec+" in lowered:
        return CertificationCheck(
            is_valid=True,
            confidence="medium",
            corrected_name="CompTIA Security+",
            description=(
                "Entry-level cybersecurity certification covering security "
                "principles and practices."
            ),
        )
    return CertificationCheck(
        is_valid=False,
        confidence="low",
        suggestions=_DEFAULT_SUGGESTIONS,
    )


def _validation_prompt(name: str) -> str:
    return (
        f'Is "{name}" a real professional certification?\n\n'
        "Respond with JSON only:\n\n"
        "{\n"
        '  "isValid": boolean,\n'
        '  "correctedName": "official name if valid",\n'
        '  "description": "what it covers and target audience",\n'
        '  "suggestions": ["alt1", "alt2", "alt3"],\n'
        '  "confidence": "high"\n'
        "}\n\n"
        "If valid: set isValid=true, provide correctedName and description, "
        "empty suggestions array\n"
        "If invalid: set isValid=false, empty correctedName and description, "
        "provide 3 real alternatives"
    )


async def validate_certification(
    name: str,
    client: Any = None,
    *,
    model: str = "gpt-4o-mini",
) -> CertificationCheck:
    """Ask the model whether ``name`` is a real certification.

    Without a client, or when the reply cannot be parsed, the keyword
    heuristics decide. Transport failures raise ``CertificateError``.
    """

    if not name.strip():
        raise CertificateError("Certification name is required.")
    if client is None:
        return fallback_validation(name)
    try:
        response = await client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": _validation_prompt(name)}],
            temperature=0.2,
        )
    except Exception as exc:
        raise CertificateError(f"Validation failed: {exc}") from exc
    try:
        content = response.choices[0].message.content
    except (AttributeError, IndexError, TypeError):
        logger.warning(
            "Empty validation response; using keyword fallback",
            extra={"certificate": name},
        )
        return fallback_validation(name)
    text = (content or "").strip()
    try:
        return CertificationCheck.from_payload(extract_json(text))
    except MalformedResponseError as exc:
        logger.warning(
            "Unusable validation response; using keyword fallback",
            extra={"certificate": name, "cause": str(exc)},
        )
        return fallback_validation(name)


class CertificateManager:
    """CRUD for certificates plus their question banks."""

    def __init__(self, storage: StorageBridge) -> None:
        self._storage = storage

    def list(self) -> List[Certificate]:
        return self._storage.load_certificates()

    def get(self, identifier: str) -> Certificate:
        """Find a certificate by id or by case-insensitive name."""

        needle = identifier.strip().lower()
        for certificate in self.list():
            if certificate.id == identifier or certificate.name.lower() == needle:
                return certificate
        raise CertificateError(f"Unknown certificate: {identifier}")

    def create(self, name: str, description: str = "") -> Certificate:
        clean = name.strip()
        if not clean:
            raise CertificateError("Certificate name must not be empty.")
        certificates = self.list()
        if any(cert.name.lower() == clean.lower() for cert in certificates):
            raise CertificateError(f"Certificate already exists: {clean}")
        certificate = Certificate(
            id=new_id("cert"), name=clean, description=description.strip()
        )
        certificates.append(certificate)
        self._storage.save_certificates(certificates)
        return certificate

    def remove(self, identifier: str) -> Certificate:
        certificate = self.get(identifier)
        remaining = [cert for cert in self.list() if cert.id != certificate.id]
        self._storage.save_certificates(remaining)
        question_sets = [
            item
            for item in self._storage.load_question_sets()
            if item.certificate_id != certificate.id
        ]
        self._storage.save_question_sets(question_sets)
        return certificate

    def question_set_for(self, certificate: Certificate) -> Optional[QuestionSet]:
        for item in self._storage.load_question_sets():
            if item.certificate_id == certificate.id:
                return item
        return None

    def add_questions(
        self, certificate: Certificate, questions: Sequence[Question]
    ) -> QuestionSet:
        question_sets = self._storage.load_question_sets()
        target = next(
            (s for s in question_sets if s.certificate_id == certificate.id),
            None,
        )
        if target is None:
            target = QuestionSet(
                id=new_id("set"), certificate_id=certificate.id
            )
            question_sets.append(target)
        target.extend(questions)
        self._storage.save_question_sets(question_sets)

        if certificate.question_set_id != target.id:
            certificates = self.list()
            for cert in certificates:
                if cert.id == certificate.id:
                    cert.question_set_id = target.id
            self._storage.save_certificates(certificates)
            certificate.question_set_id = target.id
        return target

    async def generate_bank(
        self,
        certificate: Certificate,
        count: int,
        generator: QuestionGenerator,
        *,
        language: str = "en",
    ) -> QuestionSet:
        """Bulk-generate ``count`` questions into the certificate's bank."""

        validate_quiz_config(
            QuizConfig(
                certificate_id=certificate.id,
                certificate_name=certificate.name,
                language=language,
                question_count=count,
            ),
            require_credential=False,
        )
        questions = await generator.generate_many(
            count, certificate.name, language
        )
        question_set = self.add_questions(certificate, questions)
        logger.info(
            "Extended question bank",
            extra={
                "certificate_id": certificate.id,
                "added": len(questions),
                "total": len(question_set.questions),
            },
        )
        return question_set
