from __future__ import annotations

import asyncio
import heapq
import re
from dataclasses import dataclass
from itertools import islice
from typing import TYPE_CHECKING, Iterable, Iterator, List, Optional, Tuple

if TYPE_CHECKING:
    from carbonls.lsp.context import LspContext
    from carbonls.lsp.server import LspServer

from carbonls.core import get_logger
from carbonls.lsp.common_structures import (
    Diagnostic,
    DiagnosticRelatedInformation,
    DiagnosticSeverity,
    DocumentUri,
    Location,
)
from carbonls.lsp.document_sync import TextDocument
from carbonls.lsp.exceptions import ConfigurationUnavailable
from carbonls.lsp.lsp_data_model import LspModel
from carbonls.lsp.methods import RequestMethodEnum

logger = get_logger(__name__)


class PublishDiagnosticsParams(LspModel):
    uri: DocumentUri
    """
    The URI for which diagnostic information is reported.
    """
    version: Optional[int] = None
    """
    Optional the version number of the document the diagnostics are published
    for.

    @since 3.15.0
    """
    diagnostics: List[Diagnostic]
    """
    An array of diagnostic information items.
    """


@dataclass(frozen=True)
class ValidationRule:
    pattern: re.Pattern
    severity: DiagnosticSeverity
    message: str
    """
    Message template, `{match}` is replaced with the matched text.
    """
    related_messages: Tuple[str, ...] = ()


DEFAULT_RULES: Tuple[ValidationRule, ...] = (
    ValidationRule(
        pattern=re.compile(r"\b[A-Z]{2,}\b"),
        severity=DiagnosticSeverity.WARNING,
        message="{match} is all uppercase.",
        related_messages=("Spelling matters", "Particularly for names"),
    ),
)


@dataclass(frozen=True)
class DiagnosticsUpdate:
    uri: DocumentUri
    diagnostics: List[Diagnostic]
    document: Optional[TextDocument] = None
    """
    Snapshot the diagnostics were computed for, `None` for diagnostics clearing a closed document.
    """
    settings_generation: int = 0
    """
    Generation of the session settings the diagnostics were computed with.
    """


def _matches(
    text: str, rules: Iterable[ValidationRule]
) -> Iterator[Tuple[int, int, str, ValidationRule]]:
    def rule_matches(rule: ValidationRule):
        for m in rule.pattern.finditer(text):
            yield m.start(), m.end(), m.group(0), rule

    # keep the text order across all rules
    return heapq.merge(
        *(rule_matches(rule) for rule in rules), key=lambda match: match[:2]
    )


def compute_diagnostics(
    document: TextDocument,
    max_number_of_problems: int,
    *,
    related_information: bool,
    source: Optional[str] = None,
    rules: Iterable[ValidationRule] = DEFAULT_RULES,
) -> List[Diagnostic]:
    if max_number_of_problems <= 0:
        return []

    diagnostics = []
    for start, end, matched, rule in islice(
        _matches(document.text, rules), max_number_of_problems
    ):
        range_ = document.range_at(start, end)
        diagnostic = Diagnostic(
            range=range_,
            severity=rule.severity,
            message=rule.message.format(match=matched),
        )
        if source is not None:
            diagnostic.source = source
        if related_information and len(rule.related_messages) > 0:
            diagnostic.related_information = [
                DiagnosticRelatedInformation(
                    location=Location(uri=document.uri, range=range_.model_copy()),
                    message=message,
                )
                for message in rule.related_messages
            ]
        diagnostics.append(diagnostic)
    return diagnostics


async def validate(context: LspContext, document: TextDocument) -> None:
    generation = context.settings.generation
    try:
        settings = await context.settings.get(document.uri)
    except ConfigurationUnavailable as e:
        logger.warning(f"{e}, using default settings")
        settings = context.settings.default

    diagnostics_config = context.config.lsp.diagnostics
    if diagnostics_config.enabled:
        diagnostics = compute_diagnostics(
            document,
            settings.max_number_of_problems,
            related_information=context.capabilities.diagnostic_related_information,
            source=diagnostics_config.source,
        )
    else:
        diagnostics = []

    logger.debug(
        f"Validated {document.uri} version {document.version}: {len(diagnostics)} problems"
    )
    await context.diagnostics_queue.put(
        DiagnosticsUpdate(document.uri, diagnostics, document, generation)
    )


async def diagnostics_loop(server: LspServer, context: LspContext):
    queue: asyncio.Queue = context.diagnostics_queue
    while True:
        update: DiagnosticsUpdate = await queue.get()

        if update.document is not None:
            # a newer change or a reopen of the document has its own validation scheduled
            if (
                update.uri not in context.documents
                or context.documents.get(update.uri) is not update.document
            ):
                logger.debug(
                    f"Dropping superseded diagnostics of {update.uri} version {update.document.version}"
                )
                continue
            # settings changed meanwhile, every open document is being revalidated
            if update.settings_generation < context.settings.generation:
                logger.debug(
                    f"Dropping diagnostics of {update.uri} computed with outdated settings"
                )
                continue
            params = PublishDiagnosticsParams(
                uri=update.uri,
                version=update.document.version,
                diagnostics=update.diagnostics,
            )
        else:
            params = PublishDiagnosticsParams(
                uri=update.uri,
                diagnostics=update.diagnostics,
            )

        await server.send_notification(RequestMethodEnum.PUBLISH_DIAGNOSTICS, params)
