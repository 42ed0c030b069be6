"""Jinja2 template engine used for default settings and setup files."""
from __future__ import annotations

import os
import posixpath
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    PackageLoader,
    StrictUndefined,
    TemplateError,
)

if TYPE_CHECKING:
    from ..hosts.base import Host


class TemplateRenderError(RuntimeError):
    """Raised when a template cannot be rendered."""


def _join(*parts: object) -> str:
    """Join path fragments with ``/`` and normalise the result."""
    pieces = [str(part) for part in parts if part not in (None, "")]
    if not pieces:
        return ""
    return posixpath.normpath(posixpath.join(*pieces))


def _build_environment(override_dir: Path | None) -> Environment:
    loaders: list[FileSystemLoader | PackageLoader] = []
    if override_dir is not None and override_dir.is_dir():
        loaders.append(FileSystemLoader(str(override_dir)))
    loaders.append(PackageLoader("geneosctl", "templates"))
    environment = Environment(
        loader=ChoiceLoader(loaders),
        undefined=StrictUndefined,
        keep_trailing_newline=True,
        autoescape=False,
    )
    environment.globals["join"] = _join
    return environment


@dataclass(slots=True)
class TemplateEngine:
    """Render packaged templates, optionally shadowed by an override directory."""

    environment: Environment
    override_dir: Path | None = None

    @classmethod
    def with_overrides(cls, override_dir: Path | None) -> TemplateEngine:
        """Return an engine that prefers templates found in *override_dir*."""
        return cls(environment=_build_environment(override_dir), override_dir=override_dir)

    def render_to_string(self, template_name: str, context: Mapping[str, object]) -> str:
        """Render the named template."""
        try:
            template = self.environment.get_template(template_name)
            return template.render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render {template_name}: {exc}") from exc

    def render_text(self, source: str, context: Mapping[str, object]) -> str:
        """Render an inline template string such as a default setting."""
        if "{" not in source:
            return source
        try:
            return self.environment.from_string(source).render(**context)
        except TemplateError as exc:
            raise TemplateRenderError(f"Failed to render {source!r}: {exc}") from exc

    def render_to_path(
        self,
        template_name: str,
        destination: Path,
        context: Mapping[str, object],
        *,
        mode: int = 0o644,
    ) -> bool:
        """Render into a local file, returning ``True`` when the content changed."""
        content = self.render_to_string(template_name, context)
        if destination.exists() and destination.read_text(encoding="utf-8") == content:
            return False
        destination.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=str(destination.parent), prefix=f".{destination.name}.")
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.chmod(tmp_path, mode)
            os.replace(tmp_path, destination)
        finally:
            tmp_path.unlink(missing_ok=True)
        return True

    def render_to_host(
        self,
        template_name: str,
        host: Host,
        destination: str,
        context: Mapping[str, object],
        *,
        mode: int = 0o664,
    ) -> bool:
        """Render into *destination* on *host*, returning ``True`` when changed."""
        content = self.render_to_string(template_name, context)
        try:
            if host.read_text(destination) == content:
                return False
        except FileNotFoundError:
            pass
        host.write_text(destination, content, mode=mode)
        return True


__all__ = ["TemplateEngine", "TemplateRenderError"]
