"""
Template Store — persists agent templates as YAML records.

Records live under ``<home>/templates/<template_name>.yaml``. Every load
goes through the migration chain, so records written by older releases
come back with the same backfilled values each time.

Removing a template is an explicit administrator action (``delete``);
nothing in verification or provisioning ever calls it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .. import VMAGENT_HOME
from .migrations import rehydrate, to_record
from .schema import AgentTemplate

logger = logging.getLogger(__name__)


class TemplateStore:
    """Loads and saves agent templates.

    Args:
        home: vmagent home directory (default ~/.vmagent).
    """

    def __init__(self, home: Optional[Path] = None) -> None:
        self._home = (home or Path(VMAGENT_HOME)).expanduser()
        self._dir = self._home / "templates"
        self._cache: Dict[str, Tuple[AgentTemplate, Dict[str, Any]]] = {}

    @property
    def directory(self) -> Path:
        return self._dir

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def scan(self) -> Dict[str, AgentTemplate]:
        """Load every template record on disk.

        Unreadable files are logged and skipped.

        Returns:
            Dict mapping template name to AgentTemplate.
        """
        found: Dict[str, Tuple[AgentTemplate, Dict[str, Any]]] = {}
        if self._dir.is_dir():
            for path in sorted(self._dir.glob("*.y*ml")):
                try:
                    template, runtime = self._load_file(path)
                except Exception as exc:
                    logger.warning("Skipping %s: %s", path, exc)
                    continue
                if not template.template_name:
                    logger.warning("Skipping %s: record has no template_name", path)
                    continue
                found[template.template_name] = (template, runtime)

        self._cache = found
        return {name: entry[0] for name, entry in found.items()}

    def list_templates(self) -> List[AgentTemplate]:
        """All stored templates sorted by name."""
        if not self._cache:
            self.scan()
        return [self._cache[name][0] for name in sorted(self._cache)]

    def get(self, template_name: str) -> Optional[AgentTemplate]:
        """Get a template by name, or None."""
        if not self._cache:
            self.scan()
        entry = self._cache.get(template_name)
        return entry[0] if entry else None

    def runtime_flags(self, template_name: str) -> Dict[str, Any]:
        """Last persisted ``verified``, ``failed`` and ``status_details`` for a template."""
        if not self._cache:
            self.scan()
        entry = self._cache.get(template_name)
        if entry is None:
            return {"verified": False, "failed": False, "status_details": ""}
        return dict(entry[1])

    def save(
        self,
        template: AgentTemplate,
        verified: bool = False,
        status_details: str = "",
        failed: bool = False,
    ) -> Path:
        """Write a template record, replacing any previous one.

        Args:
            template: The template to persist.
            verified: Runtime verification flag to store alongside.
            status_details: Last diagnostic message.
            failed: Whether the last verification or provisioning attempt failed.

        Returns:
            Path to the written file.

        Raises:
            ValueError: If the template has no name, or the name would place
                the record outside the templates directory.
        """
        if not template.template_name:
            raise ValueError("Cannot save a template without a template_name")

        path = self._record_path(template.template_name)
        self._dir.mkdir(parents=True, exist_ok=True)
        record = to_record(
            template, verified=verified, status_details=status_details, failed=failed,
        )
        path.write_text(
            yaml.safe_dump(record, default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )
        self._cache[template.template_name] = (
            template,
            {
                "verified": verified,
                "failed": failed and not verified,
                "status_details": status_details,
            },
        )
        logger.info("Saved template %s to %s", template.template_name, path)
        return path

    def delete(self, template_name: str) -> bool:
        """Remove a template record. Returns False if it did not exist.

        Raises:
            ValueError: If the name would point outside the templates directory.
        """
        paths = [self._record_path(template_name, suffix) for suffix in (".yaml", ".yml")]
        self._cache.pop(template_name, None)
        removed = False
        for path in paths:
            if path.exists():
                path.unlink()
                removed = True
        if removed:
            logger.info("Deleted template %s", template_name)
        return removed

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _record_path(self, template_name: str, suffix: str = ".yaml") -> Path:
        """Record file for a template name, refusing names that escape the directory."""
        path = self._dir / f"{template_name}{suffix}"
        if path.resolve().parent != self._dir.resolve():
            raise ValueError(f"Template name {template_name!r} is not a valid record name")
        return path

    @staticmethod
    def _load_file(path: Path) -> Tuple[AgentTemplate, Dict[str, Any]]:
        """Parse, upgrade and resolve a single template record.

        Raises:
            ValueError: If the file is not a YAML mapping.
        """
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict):
            raise ValueError(f"Expected a YAML mapping, got {type(raw).__name__}")
        return rehydrate(raw)
