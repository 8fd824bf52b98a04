"""
Decision Exporter

Renders the decisions of a repository as a JSON document or as
ADR-style Markdown (newest first, numbered so the oldest is ADR 1).
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from archlog.errors import RecordNotFoundError, ValidationError
from archlog.models.records import Artifact, Decision, Repo
from archlog.services.store import Store

logger = logging.getLogger(__name__)


class ExportFormat(str, Enum):
    JSON = "json"
    MARKDOWN = "markdown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def render_json(repo: Repo, entries: List[tuple], exported_at: datetime) -> Dict[str, Any]:
    return {
        "repo": {"id": repo.id, "full_name": repo.full_name},
        "exported_at": exported_at.isoformat(),
        "decisions": [
            {
                "id": decision.id,
                "title": decision.title,
                "context": decision.context,
                "decision": decision.decision,
                "reasoning": decision.reasoning,
                "consequences": decision.consequences,
                "alternatives": decision.alternatives,
                "tags": decision.tags,
                "significance": decision.significance,
                "extracted_by": decision.extracted_by,
                "created_at": decision.created_at.isoformat(),
                "source": {
                    "type": artifact.type.value,
                    "url": artifact.url,
                    "title": artifact.title,
                    "author": artifact.author,
                    "merged_at": _iso(artifact.merged_at),
                },
            }
            for decision, artifact in entries
        ],
    }


def render_markdown(repo: Repo, entries: List[tuple], exported_at: datetime) -> str:
    lines = [
        "# Architecture Decision Records",
        "",
        f"Repository: {repo.full_name}",
        f"Exported: {exported_at.date().isoformat()}",
        "",
        "---",
        "",
    ]

    for index, (decision, artifact) in enumerate(entries):
        number = len(entries) - index
        lines += [
            f"# {number}. {decision.title}",
            "",
            f"**Date:** {decision.created_at.date().isoformat()}",
            "",
            "## Status",
            "",
            "Accepted",
            "",
            "## Context",
            "",
            decision.context,
            "",
            "## Decision",
            "",
            decision.decision,
            "",
            "## Reasoning",
            "",
            decision.reasoning,
            "",
            "## Consequences",
            "",
            decision.consequences,
            "",
        ]
        if decision.alternatives:
            lines += ["## Alternatives Considered", "", decision.alternatives, ""]

        tags = ", ".join(f"`{tag}`" for tag in decision.tags)
        lines += [
            f"**Tags:** {tags}",
            "",
            "**Metadata:**",
            f"- Significance: {decision.significance:.2f}",
            f"- Source: [{artifact.title}]({artifact.url})",
            "",
            "---",
            "",
        ]

    return "\n".join(lines)


class DecisionExporter:
    def __init__(self, store: Store, clock: Callable[[], datetime] = _utcnow):
        self.store = store
        self.clock = clock

    async def export_decisions(
        self, repo_id: str, export_format: str = "json", user_id: Optional[str] = None
    ):
        """
        Export every decision of a repository.

        Returns:
            dict for ``json``, str for ``markdown``

        Raises:
            ValidationError: If the format is not supported
        """
        try:
            fmt = ExportFormat(export_format)
        except ValueError:
            raise ValidationError(
                f"Unsupported export format {export_format!r}; use json or markdown"
            ) from None

        repo = await self.store.get_repo(repo_id)
        if user_id is not None and repo.user_id != user_id:
            raise RecordNotFoundError(f"Repository {repo_id} not found")

        decisions: List[Decision] = await self.store.list_decisions(repo_id)
        entries = []
        for decision in decisions:
            artifact: Artifact = await self.store.get_artifact(decision.artifact_id)
            entries.append((decision, artifact))

        logger.info(f"Exporting {len(entries)} decisions of {repo.full_name} as {fmt.value}")
        exported_at = self.clock()
        if fmt == ExportFormat.MARKDOWN:
            return render_markdown(repo, entries, exported_at)
        return render_json(repo, entries, exported_at)
