"""Documentation site configuration and navigation tree.

Reads an mkdocs-style configuration (``mkdocs.yml``) and flattens its ``nav``
tree. Configurations routinely carry ``!!python/name:...`` tags for plugin
wiring and ``!ENV`` tags for environment lookups; both are accepted by a
dedicated safe loader so the rest of the document can still be inspected.

Examples
--------
>>> nav = [{"Introduction": "index.md"}, {"Guides": [{"Tools": "guides/tools.md"}]}]
>>> entries = flatten_nav(nav)
>>> [(entry.title, entry.path, entry.trail) for entry in entries]
[('Introduction', 'index.md', ()), ('Tools', 'guides/tools.md', ('Guides',))]
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlsplit

import yaml
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

from uvworkspace.errors import DocsConfigError
from uvworkspace.logging import get_logger

__all__ = [
    "DocsConfig",
    "NavEntry",
    "docs_pages",
    "flatten_nav",
    "load_docs_config",
    "markdown_extension_names",
    "theme_name",
]

LOGGER = get_logger(__name__)

DEFAULT_DOCS_DIR = "docs"
_MARKDOWN_PREFIX = "markdown.extensions."


class _DocsLoader(yaml.SafeLoader):
    """Safe loader that tolerates mkdocs-specific tags."""


def _construct_python_tag(loader: _DocsLoader, _suffix: str, node: Node) -> object:
    """Return the raw value for ``!!python/...`` tags."""
    if isinstance(node, ScalarNode):
        return loader.construct_scalar(node)
    if isinstance(node, SequenceNode):
        return loader.construct_sequence(node)
    if isinstance(node, MappingNode):
        return loader.construct_mapping(node)
    return None


def _construct_env(loader: _DocsLoader, node: Node) -> object:
    """Resolve ``!ENV VAR`` and ``!ENV [VAR, OTHER, default]``.

    With a sequence, the first variable that is set wins; the last item is
    the default when none is set.
    """
    if isinstance(node, ScalarNode):
        names = [loader.construct_scalar(node)]
        default: object = None
    elif isinstance(node, SequenceNode):
        items = [loader.construct_object(child) for child in node.value]
        if not items:
            return None
        names, default = items[:-1] or items, items[-1] if len(items) > 1 else None
    else:
        return None
    for name in names:
        value = os.environ.get(str(name))
        if value is not None:
            return value
    return default


_DocsLoader.add_multi_constructor("tag:yaml.org,2002:python/", _construct_python_tag)
_DocsLoader.add_constructor("!ENV", _construct_env)


@dataclass(frozen=True, slots=True)
class NavEntry:
    """A navigation entry that points at a page.

    Attributes
    ----------
    title : str | None
        Display title; ``None`` for bare path entries.
    path : str
        Target document path relative to ``docs_dir``, or an external URL.
    trail : tuple[str, ...]
        Titles of the enclosing sections, outermost first.
    external : bool
        Whether ``path`` is an external URL.
    """

    title: str | None
    path: str
    trail: tuple[str, ...] = ()
    external: bool = False


@dataclass(frozen=True, slots=True)
class DocsConfig:
    """A loaded documentation configuration."""

    path: Path
    site_name: str
    docs_dir: Path
    nav: list[Any] | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def nav_entries(self) -> list[NavEntry]:
        return flatten_nav(self.nav or [], source=self.path)


def load_docs_config(path: Path) -> DocsConfig:
    """Load a documentation configuration file.

    Parameters
    ----------
    path : Path
        Path to ``mkdocs.yml``.

    Returns
    -------
    DocsConfig
        Loaded configuration; ``docs_dir`` is resolved against the file's
        directory and defaults to ``docs``.

    Raises
    ------
    DocsConfigError
        If the file is missing, is not valid YAML, is not a mapping, lacks
        ``site_name`` or declares a ``nav`` that is not a list.
    """
    try:
        with path.open(encoding="utf-8") as handle:
            payload = yaml.load(handle, Loader=_DocsLoader)  # noqa: S506 - safe loader subclass
    except FileNotFoundError as exc:
        msg = f"Documentation configuration not found: {path}"
        raise DocsConfigError(msg, path=path, cause=exc) from exc
    except (yaml.YAMLError, UnicodeDecodeError) as exc:
        msg = f"Failed to parse {path}: {exc}"
        raise DocsConfigError(msg, path=path, cause=exc) from exc

    if not isinstance(payload, dict):
        msg = f"{path} must contain a mapping"
        raise DocsConfigError(msg, path=path)
    site_name = payload.get("site_name")
    if not isinstance(site_name, str) or not site_name.strip():
        msg = f"{path} is missing the required `site_name`"
        raise DocsConfigError(msg, path=path)
    nav = payload.get("nav")
    if nav is not None and not isinstance(nav, list):
        msg = f"`nav` in {path} must be a list"
        raise DocsConfigError(msg, path=path)

    docs_dir = Path(str(payload.get("docs_dir") or DEFAULT_DOCS_DIR))
    if not docs_dir.is_absolute():
        docs_dir = path.parent / docs_dir
    LOGGER.debug("Loaded docs config %s", path, extra={"operation": "load_docs_config"})
    return DocsConfig(path=path, site_name=site_name, docs_dir=docs_dir, nav=nav, raw=payload)


def _is_external(target: str) -> bool:
    parts = urlsplit(target)
    return bool(parts.scheme) or bool(parts.netloc)


def flatten_nav(
    nav: list[Any], *, source: Path | str = "mkdocs.yml", trail: tuple[str, ...] = ()
) -> list[NavEntry]:
    """Flatten a ``nav`` tree into page entries, depth first.

    Parameters
    ----------
    nav : list[Any]
        Items of the form ``"path.md"``, ``{title: "path.md"}`` or
        ``{title: [children]}``.
    source : Path | str, optional
        Configuration file, used in error messages.
    trail : tuple[str, ...], optional
        Section titles enclosing ``nav``.

    Returns
    -------
    list[NavEntry]
        Page entries in navigation order; sections contribute their title to
        the trail of their children.

    Raises
    ------
    DocsConfigError
        If an item is neither a path nor a single-key mapping.
    """
    entries: list[NavEntry] = []
    for item in nav:
        if isinstance(item, str):
            entries.append(NavEntry(None, item, trail, _is_external(item)))
            continue
        if not isinstance(item, dict) or len(item) != 1:
            msg = f"Invalid nav item under {' > '.join(trail) or 'nav'}: {item!r}"
            raise DocsConfigError(msg, path=source)
        ((title, value),) = item.items()
        title = str(title)
        if isinstance(value, str):
            entries.append(NavEntry(title, value, trail, _is_external(value)))
        elif isinstance(value, list):
            entries.extend(flatten_nav(value, source=source, trail=(*trail, title)))
        else:
            msg = f"Nav item `{title}` must map to a path or a list, got {value!r}"
            raise DocsConfigError(msg, path=source)
    return entries


def markdown_extension_names(config: DocsConfig | dict[str, Any]) -> list[str]:
    """Return the configured Markdown extension names in declaration order.

    Entries may be plain strings or single-key mappings carrying options.
    Built-in extensions are reported by their short name, so
    ``markdown.extensions.attr_list`` and ``attr_list`` compare equal.
    """
    raw = config.raw if isinstance(config, DocsConfig) else config
    names: list[str] = []
    for item in raw.get("markdown_extensions") or []:
        if isinstance(item, str):
            name = item
        elif isinstance(item, dict) and item:
            name = str(next(iter(item)))
        else:
            continue
        names.append(name.removeprefix(_MARKDOWN_PREFIX))
    return names


def theme_name(config: DocsConfig | dict[str, Any]) -> str | None:
    """Return the theme name, whether ``theme`` is a string or a mapping."""
    raw = config.raw if isinstance(config, DocsConfig) else config
    theme = raw.get("theme")
    if isinstance(theme, str):
        return theme
    if isinstance(theme, dict):
        name = theme.get("name")
        return str(name) if name is not None else None
    return None


def docs_pages(docs_dir: Path) -> list[str]:
    """Return Markdown pages under ``docs_dir``, skipping hidden paths."""
    if not docs_dir.is_dir():
        return []
    pages: list[str] = []
    for page in docs_dir.rglob("*.md"):
        relative = page.relative_to(docs_dir)
        if any(part.startswith(".") for part in relative.parts):
            continue
        pages.append(relative.as_posix())
    return sorted(pages)
