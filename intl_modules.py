#!/usr/bin/env python3
"""
intl_modules.py — give every message in per-component locale files a stable,
globally unique id, and collect the message text into one dictionary per
language.

A module file looks like either of

    {"en": {"save": {"default": "Save"}}, "fr": {"save": {"default": "Enregistrer"}}}
    {"@locale": "fr", "save": {"default": "Enregistrer"}}

and compiles to an id tree ``{"save": {"default": "<prefix>:save.default"}}``
plus one flat message table per language, keyed by those ids.

Usage
-----
python intl_modules.py ids      components/Button/intl.json --root ./src
python intl_modules.py messages components/Button/fr.intl.yaml --lang fr --root ./src
python intl_modules.py combine  --root ./src --lang en --lang fr --output-dir ./dist/locales
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import re
import sys
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple, Optional, Set, Union

import json5
import quickjs
import yaml

logger = logging.getLogger(__name__)

LOCALE_MARKER = "@locale"
RESERVED_PREFIX = "@"


# --------------------------------------------------------------------------- #
class InvalidLocaleTree(ValueError):
    """Raised when a locale file has an unexpected structure."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path


class ShapeError(InvalidLocaleTree):
    """A value is neither a string nor a nested object."""

    def __init__(self, path: str, kind: str) -> None:
        super().__init__(
            f"{path or '<root>'}: values in a locale tree must be strings or objects, got {kind}",
            path,
        )
        self.kind = kind


class MissingLocaleError(InvalidLocaleTree):
    """A single-language tree has no string ``@locale`` property."""

    def __init__(self) -> None:
        super().__init__(f"Locale tree must include a string {LOCALE_MARKER!r} property", LOCALE_MARKER)


class KeyCollisionError(InvalidLocaleTree):
    """Two messages of one language would get the same id."""

    def __init__(self, path: str) -> None:
        super().__init__(f"{path}: two messages share this key", path)


def _kind(value: Any) -> str:
    match value:
        case None:
            return "null"
        case bool():
            return "boolean"
        case int() | float():
            return "number"
        case list() | tuple():
            return "array"
        case _:
            return type(value).__name__


# ---------- validated tree ------------------------------------------------- #
@dataclass(frozen=True)
class Leaf:
    text: str


@dataclass(frozen=True)
class Node:
    children: Mapping[str, Union[Leaf, Node]] = field(default_factory=dict)


Entry = Union[Leaf, Node]


class Shape(Enum):
    AUTO = "auto"
    MULTI = "multi"
    SINGLE = "single"


def parse_tree(raw: Any) -> Node:
    """
    Validate a decoded locale document and lift it into ``Leaf``/``Node`` values.

    Raises ``ShapeError`` for the first value (depth-first, in document order)
    that is neither a string nor a mapping.
    """
    if not isinstance(raw, Mapping):
        raise ShapeError("", _kind(raw))
    return _parse_node(raw, "")


def _parse_node(raw: Mapping[Any, Any], path: str) -> Node:
    children: Dict[str, Entry] = {}
    for key, value in raw.items():
        key = str(key)                           # YAML allows non-string keys
        here = f"{path}.{key}" if path else key
        if key in children:
            raise KeyCollisionError(here)
        if isinstance(value, str):
            children[key] = Leaf(value)
        elif isinstance(value, Mapping):
            children[key] = _parse_node(value, here)
        else:
            raise ShapeError(here, _kind(value))
    return Node(children)


def split_languages(tree: Node, shape: Shape = Shape.AUTO) -> Dict[str, Node]:
    """Return the message tree of every language in ``tree``."""
    if shape is Shape.AUTO:
        shape = Shape.SINGLE if LOCALE_MARKER in tree.children else Shape.MULTI

    if shape is Shape.SINGLE:
        marker = tree.children.get(LOCALE_MARKER)
        if not isinstance(marker, Leaf):
            raise MissingLocaleError()
        return {marker.text: tree}

    languages: Dict[str, Node] = {}
    for lang, entry in tree.children.items():
        if lang.startswith(RESERVED_PREFIX):
            continue
        if not isinstance(entry, Node):
            raise ShapeError(lang, "string")
        languages[lang] = entry
    return languages


# ---------- prefixes ------------------------------------------------------- #
def module_prefix(path: Union[str, os.PathLike], root: Union[str, os.PathLike]) -> str:
    """Path of the module relative to ``root``, always with forward slashes."""
    return os.path.relpath(os.fspath(path), os.fspath(root)).replace("\\", "/")


class PrefixAllocator:
    """
    Hands out short numeric prefixes: the first prefix seen becomes ``"1"``,
    the next new one ``"2"`` and so on, while a repeated prefix keeps its token.

    Tokens depend on the order modules are compiled in, so shortened ids are
    only stable across builds if that order is. Each build should own one
    allocator; it is safe to share between threads.
    """

    def __init__(self, start: int = 1) -> None:
        self._next = start
        self._tokens: Dict[str, str] = {}
        self._lock = threading.Lock()

    def token(self, prefix: str) -> str:
        with self._lock:
            token = self._tokens.get(prefix)
            if token is None:
                token = self._tokens[prefix] = str(self._next)
                self._next += 1
            return token

    @property
    def assigned(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._tokens)


def resolve_prefix(
    path: Union[str, os.PathLike],
    root: Union[str, os.PathLike],
    allocator: Optional[PrefixAllocator] = None,
) -> str:
    prefix = module_prefix(path, root)
    if allocator is None:
        return prefix
    return allocator.token(prefix)


# ---------- compiling ------------------------------------------------------ #
class CompiledModule(NamedTuple):
    ids: Dict[str, Any]
    messages: Dict[str, Dict[str, str]]


def compile_tree(raw: Any, prefix: str, shape: Shape = Shape.AUTO) -> CompiledModule:
    """
    Replace every message in ``raw`` with ``prefix:dotted.path`` and collect
    the original strings per language.

    The whole document is validated before any id is generated, including
    dotted keys such as ``"a.b"`` that would collide with a nested ``a -> b``.
    In the multi-language shape all languages share one id tree, since an id
    names a message, not a translation of it.
    """
    languages = split_languages(parse_tree(raw), shape)
    for tree in languages.values():
        _check_paths(tree, "", set())

    ids: Dict[str, Any] = {}
    messages: Dict[str, Dict[str, str]] = {}
    for lang, tree in languages.items():
        table: Dict[str, str] = {}
        ids = merge([ids, _walk(tree, prefix, "", table)])
        messages[lang] = table
    return CompiledModule(ids, messages)


def _check_paths(tree: Node, path: str, seen: Set[str]) -> None:
    for key, entry in tree.children.items():
        if key.startswith(RESERVED_PREFIX):
            continue
        here = f"{path}{key}"
        if isinstance(entry, Node):
            _check_paths(entry, f"{here}.", seen)
        elif here in seen:
            raise KeyCollisionError(here)
        else:
            seen.add(here)


def _walk(tree: Node, prefix: str, path: str, table: Dict[str, str]) -> Dict[str, Any]:
    ids: Dict[str, Any] = {}
    for key, entry in tree.children.items():
        if key.startswith(RESERVED_PREFIX):
            continue
        match entry:
            case Node():
                ids[key] = _walk(entry, prefix, f"{path}{key}.", table)
            case Leaf(text=text):
                ident = f"{prefix}:{path}{key}"
                table[ident] = text
                ids[key] = ident
    return ids


def messages_for(raw: Any, prefix: str, language: str, shape: Shape = Shape.AUTO) -> Dict[str, str]:
    """The message table of one language; empty if the module lacks it."""
    return compile_tree(raw, prefix, shape).messages.get(language, {})


# ---------- merging -------------------------------------------------------- #
def merge(tables: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merge message tables in order into a new dictionary.

    Nested objects are merged key by key; a string always replaces whatever
    was there before, so later tables win. Inputs are never modified and every
    dict in the result is a new one; leaves are stored as given.
    """
    merged: Dict[str, Any] = {}
    for table in tables:
        _merge_nested(merged, table, "")
    return merged


def _merge_nested(base: Dict[str, Any], incoming: Mapping[str, Any], path: str) -> None:
    # `base` and every dict below it were created by merge() itself
    for key, value in incoming.items():
        here = f"{path}.{key}" if path else key
        current = base.get(key)

        if isinstance(value, Mapping):
            if not isinstance(current, dict):
                if current is not None:
                    logger.warning("%s: object replaces string %r", here, current)
                current = base[key] = {}
            _merge_nested(current, value, here)
        else:
            if isinstance(current, dict):
                logger.warning("%s: string replaces object with %d keys", here, len(current))
            elif current is not None and current != value:
                logger.debug("%s: %r overrides %r", here, value, current)
            base[key] = value


def combine(modules: Iterable[CompiledModule], language: str) -> Dict[str, Any]:
    """Merge ``language``'s table from every module that has one."""
    return merge(m.messages[language] for m in modules if language in m.messages)


# ---------- loading sources ------------------------------------------------ #
class BaseLoader(ABC):
    """Base class for any file-type loader."""

    suffixes: tuple = ()

    @abstractmethod
    def parse(self, src: str, file: Path) -> Any:
        """Decode the text of ``file``."""

    def load(self, file: Path) -> Any:
        try:
            src = file.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise InvalidLocaleTree(f"{file}: {exc}") from exc
        return self.parse(src, file)


class JsonLoader(BaseLoader):
    suffixes = (".json",)

    def parse(self, src: str, file: Path) -> Any:
        try:
            return json.loads(src)
        except json.JSONDecodeError as exc:
            raise InvalidLocaleTree(f"{file}: {exc}") from exc


class Json5Loader(BaseLoader):
    suffixes = (".json5",)

    def parse(self, src: str, file: Path) -> Any:
        try:
            return json5.loads(src)
        except ValueError as exc:
            raise InvalidLocaleTree(f"{file}: {exc}") from exc


class YamlLoader(BaseLoader):
    suffixes = (".yaml", ".yml")

    def parse(self, src: str, file: Path) -> Any:
        try:
            payload = yaml.safe_load(src)
        except yaml.YAMLError as exc:
            raise InvalidLocaleTree(f"{file}: {exc}") from exc
        return {} if payload is None else payload


class JsLoader(BaseLoader):
    """
    Parses files of the form  export default { ... };
    Understands template literals through json5 or (fallback) QuickJS.
    """

    suffixes = (".js", ".mjs")

    _re_export   = re.compile(r"^\s*(?:export\s+default|module\.exports\s*=)\s*", re.I | re.S)
    _re_backtick = re.compile(r"`([^`\\]*(?:\\.[^`\\]*)*)`", re.S)

    @staticmethod
    def _strip_template_literals(src: str) -> str:
        """`text` → "text", unless it interpolates ${…}."""
        def repl(m: re.Match) -> str:
            body = m.group(1)
            if "${" in body:
                return m.group(0)
            return json.dumps(body, ensure_ascii=False)
        return JsLoader._re_backtick.sub(repl, src)

    def parse(self, src: str, file: Path) -> Any:
        src = self._re_export.sub("", src, count=1).rstrip()
        if src.endswith(";"):
            src = src[:-1].rstrip()

        # 1) the cheap way: json5
        try:
            return json5.loads(self._strip_template_literals(src))
        except ValueError:
            pass

        # 2) evaluate it with QuickJS, parenthesised so `{` is not a block
        ctx = quickjs.Context()
        try:
            json_str = ctx.eval(f"JSON.stringify(({src}))")
        except quickjs.JSException as exc:
            raise InvalidLocaleTree(f"{file}: {exc}") from exc
        if json_str is None:                       # JSON.stringify(undefined)
            raise InvalidLocaleTree(f"{file}: default export is undefined")
        return json.loads(json_str)


LOADERS: Dict[str, BaseLoader] = {
    suffix: loader
    for loader in (JsonLoader(), Json5Loader(), YamlLoader(), JsLoader())
    for suffix in loader.suffixes
}


def load_source(file: Path) -> Any:
    loader = LOADERS.get(file.suffix.lower())
    if loader is None:
        raise InvalidLocaleTree(f"{file}: no loader for {file.suffix or 'files without a suffix'!r}")
    return loader.load(file)


# ---------- project -------------------------------------------------------- #
@dataclass(frozen=True)
class CompileOptions:
    shorten: bool = False
    language: Optional[str] = None
    shape: Shape = Shape.AUTO


@dataclass
class BuildResult:
    modules: Dict[str, CompiledModule] = field(default_factory=dict)
    failures: Dict[str, Union[InvalidLocaleTree, OSError]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


class Project:
    """All locale modules below one root directory."""

    def __init__(
        self,
        root: Path,
        pattern: str = "**/*.intl.*",
        options: CompileOptions = CompileOptions(),
        allocator: Optional[PrefixAllocator] = None,
    ) -> None:
        if not root.is_dir():
            raise FileNotFoundError(f"{root} is not a directory")
        self.root = root.resolve()
        self.pattern = pattern
        self.options = options
        self.allocator = (allocator or PrefixAllocator()) if options.shorten else None

    def discover(self) -> List[Path]:
        # sorted, so that shortened prefixes do not depend on directory order
        return sorted(
            p for p in self.root.glob(self.pattern)
            if p.is_file() and p.suffix.lower() in LOADERS
        )

    def prefix(self, file: Path) -> str:
        return resolve_prefix(file.resolve(), self.root, self.allocator)

    def compile(self, file: Path) -> CompiledModule:
        prefix = self.prefix(file)
        compiled = compile_tree(load_source(file), prefix, self.options.shape)
        logger.debug("compiled %s as %r (%s)", file, prefix, ", ".join(compiled.messages) or "no languages")
        return compiled

    def messages(self, file: Path, language: Optional[str] = None) -> Dict[str, str]:
        language = language or self.options.language
        if language is None:
            raise ValueError("no language given")
        return self.compile(file).messages.get(language, {})

    def build(self, files: Optional[Iterable[Path]] = None) -> BuildResult:
        result = BuildResult()
        for file in self.discover() if files is None else files:
            name = module_prefix(file.resolve(), self.root)
            try:
                result.modules[name] = self.compile(file)
            except (InvalidLocaleTree, OSError) as exc:
                logger.error("%s: %s", name, exc)
                result.failures[name] = exc
        logger.info("compiled %d module(s), %d failed", len(result.modules), len(result.failures))
        return result

    def dictionary(self, language: str, build: Optional[BuildResult] = None) -> Dict[str, Any]:
        if build is None:
            build = self.build()
        return combine(build.modules.values(), language)


# --------------------------------------------------------------------------- #
def to_js(tree: Mapping[str, Any]) -> str:
    """Wrap ``tree`` in a CommonJS module that exports it."""
    return "/*locale*/ module.exports = " + json.dumps(tree, ensure_ascii=False) + ";"


def _render(tree: Mapping[str, Any], fmt: str) -> str:
    if fmt == "js":
        return to_js(tree)
    return json.dumps(tree, ensure_ascii=False, indent=2)


def _get_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Give locale messages unique ids and build per-language dictionaries.")
    p.add_argument("-v", "--verbose", action="count", default=0, help="-v for progress, -vv for debug output")
    sub = p.add_subparsers(dest="command", required=True)

    def _add(name: str, help_: str) -> argparse.ArgumentParser:
        sp = sub.add_parser(name, help=help_)
        sp.add_argument("--root", type=Path, default=Path("."), help="Project root that prefixes are relative to")
        sp.add_argument("--shorten", action="store_true",
                        help="Use short numeric prefixes (ids then depend on compilation order)")
        sp.add_argument("--shape", choices=[s.value for s in Shape], default=Shape.AUTO.value,
                        help="Layout of the locale files")
        sp.add_argument("--format", choices=("json", "js"), default="json", help="Output format")
        return sp

    sp = _add("ids", "Print the id tree of one module")
    sp.add_argument("module", type=Path, help="Locale module file")
    sp.add_argument("--output", type=Path, help="Output file (default: stdout)")

    sp = _add("messages", "Print one language's messages of one module")
    sp.add_argument("module", type=Path, help="Locale module file")
    sp.add_argument("--lang", required=True, help="Language to extract")
    sp.add_argument("--output", type=Path, help="Output file (default: stdout)")

    sp = _add("combine", "Merge the messages of every module into one file per language")
    sp.add_argument("--lang", action="append", required=True, help="Language to build (repeatable)")
    sp.add_argument("--pattern", default="**/*.intl.*", help="Glob for module files below --root")
    sp.add_argument("--output-dir", type=Path, default=Path("locales"), help="Output directory")
    return p


def _write_output(tree: Mapping[str, Any], dst: Optional[Path], fmt: str) -> None:
    text = _render(tree, fmt)
    if dst is None:
        print(text)
        return
    dst.parent.mkdir(parents=True, exist_ok=True)
    dst.write_text(text + "\n", encoding="utf-8")
    print(f"✅ wrote {dst} ({len(tree)} top-level keys)")


def main(argv: list[str] | None = None) -> None:
    args = _get_parser().parse_args(argv)
    logging.basicConfig(
        level=max(logging.DEBUG, logging.WARNING - 10 * args.verbose),
        format="%(levelname)s %(name)s: %(message)s",
    )

    options = CompileOptions(shorten=args.shorten, shape=Shape(args.shape),
                             language=args.lang if args.command == "messages" else None)
    try:
        project = Project(args.root, getattr(args, "pattern", "**/*.intl.*"), options)
    except FileNotFoundError as exc:
        sys.exit(str(exc))

    match args.command:
        case "ids":
            try:
                compiled = project.compile(args.module)
            except (InvalidLocaleTree, OSError) as exc:
                sys.exit(f"{args.module}: {exc}")
            _write_output(compiled.ids, args.output, args.format)

        case "messages":
            try:
                table = project.messages(args.module)
            except (InvalidLocaleTree, OSError) as exc:
                sys.exit(f"{args.module}: {exc}")
            _write_output(table, args.output, args.format)

        case "combine":
            build = project.build()
            if not build.ok:
                sys.exit(f"{len(build.failures)} module(s) failed to compile: {', '.join(build.failures)}")
            for lang in args.lang:
                dictionary = project.dictionary(lang, build)
                _write_output(dictionary, args.output_dir / f"{lang}.{args.format}", args.format)

        case _:
            sys.exit(f"Unknown command {args.command!r}")


if __name__ == "__main__":
    main()
