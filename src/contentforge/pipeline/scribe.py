"""Release notes and project metadata for finished builds."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from contentforge.pipeline.base import ModelBackedStage, Scribe
from contentforge.pipeline.models import BuildDocs, BuildOutput, BuildPlan, QualityReport
from contentforge.util.json_repair import JsonRepairError, repair_json
from contentforge.util.logging import get_logger

logger = get_logger(__name__)

SCRIBE_SYSTEM_PROMPT = (
    "You write short, casual release notes for small web pages and games. Return only a "
    'JSON object: {"metadata": {"title": ..., "icon": ..., "description": ...}, '
    '"release_notes": "2-3 sentences", "how_to_play": "short instructions or null"}.'
)


def fallback_docs(plan: BuildPlan) -> BuildDocs:
    return BuildDocs(
        title=plan.title,
        description=plan.description,
        icon=plan.icon,
        collection=plan.collection,
        release_notes=f"Built {plan.title}. Check it out.",
    )


def update_project_metadata(path: Path, slug: str, docs: BuildDocs) -> None:
    """Add or replace the project entry in the site metadata file."""
    data: dict[str, Any] = {}
    if path.exists():
        data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path.name} must hold a JSON object")
    for key in ("projects", "collections"):
        data.setdefault(key, {})
        if not isinstance(data[key], dict):
            raise ValueError(f"{path.name}: {key!r} must be an object")
    data["projects"][slug] = {
        "title": docs.title,
        "icon": docs.icon,
        "description": docs.description,
        "collection": docs.collection,
        "hidden": False,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


class ModelScribe(ModelBackedStage, Scribe):
    system_prompt = SCRIBE_SYSTEM_PROMPT

    def __init__(
        self,
        *args: Any,
        workspace_dir: str = ".",
        metadata_file: str | None = "projectmetadata.json",
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("temperature", 0.8)
        kwargs.setdefault("max_tokens", 1500)
        super().__init__(*args, **kwargs)
        self.workspace_dir = Path(workspace_dir)
        self.metadata_file = metadata_file

    def document(
        self, plan: BuildPlan, output: BuildOutput, report: QualityReport, build_id: str
    ) -> BuildDocs:
        prompt = "\n".join(
            [
                f"Generate documentation for: {plan.title}",
                f"Type: {plan.content_type}",
                f"Features: {', '.join(plan.features) or 'none listed'}",
                f"Files: {', '.join(output.files)}",
                f"Test score: {report.score}/100",
            ]
        )
        docs = self._parse(self._complete(prompt), plan)
        if self.metadata_file:
            path = self.workspace_dir / self.metadata_file
            try:
                update_project_metadata(path, plan.slug, docs)
            except (OSError, ValueError) as exc:
                logger.warning("Could not update %s for build %s: %s", path, build_id, exc)
            else:
                docs = docs.model_copy(update={"metadata_path": self.metadata_file})
        logger.info("Documentation ready for %s: %s", plan.slug, docs.description)
        return docs

    def _parse(self, content: str, plan: BuildPlan) -> BuildDocs:
        try:
            data = repair_json(content)
        except JsonRepairError as exc:
            logger.warning("Scribe output unreadable, using plan metadata: %s", exc)
            return fallback_docs(plan)
        if not isinstance(data, dict):
            return fallback_docs(plan)
        metadata = data.get("metadata") if isinstance(data.get("metadata"), dict) else {}
        how_to_play = data.get("how_to_play") or data.get("howToPlay")
        return BuildDocs(
            title=str(metadata.get("title") or plan.title),
            description=str(metadata.get("description") or plan.description),
            icon=str(metadata.get("icon") or plan.icon),
            collection=plan.collection,
            release_notes=str(data.get("release_notes") or data.get("releaseNotes") or f"Built {plan.title}."),
            how_to_play=str(how_to_play) if how_to_play else None,
        )
