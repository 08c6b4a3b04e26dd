# Copyright 2021 Canonical Ltd.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Conversion of one-line-style APT sources into deb822 stanzas.

This module turns entries written in the legacy `sources.list` syntax:

    deb [arch=amd64 signed-by=/usr/share/keyrings/example.gpg] https://example.com/debian stable main

into the multi-line deb822 syntax used by `*.sources` files:

    Types: deb
    URIs: https://example.com/debian
    Suites: stable
    Components: main
    Architectures: amd64
    Signed-By: /usr/share/keyrings/example.gpg

Conversion never raises for bad input. Comment lines are normalised and kept,
and lines that cannot be read as a source entry are replaced by a comment
marking them as unparseable, so the output always has one block per
non-empty input line.

To convert a block of text:

```python
from charms.apt_sources.v0 import deb822

stanzas = deb822.convert(open("/etc/apt/sources.list").read())
```

To inspect a single entry:

```python
entry = deb822.parse_line("deb-src http://archive.ubuntu.com/ubuntu jammy main")
if entry is None:
    logger.error("not a valid sources line")
else:
    logger.info("found %s entry for %s", entry.type.value, entry.uri)
```

The module can also be run as a script (or through the `apt-deb822` console
entry point) to convert a file or standard input.
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from enum import Enum
from types import MappingProxyType
from typing import Iterable, Iterator, Mapping, Sequence

logger = logging.getLogger(__name__)

# Increment this major API version when introducing breaking changes
LIBAPI = 0

# Increment this PATCH version before publishing or reset
# to 0 if you are raising the major API version
LIBPATCH = 1


VALID_SOURCE_TYPES = ("deb", "deb-src")
ONELINE_MATCHER = re.compile(r"(deb|deb-src)\s+(?:\[([^\]]+)\]\s+)?(\S+)\s+(\S+)\s+(.+)")
OPTIONS_SEPARATOR = re.compile(r"\s+")
UNPARSEABLE_PREFIX = "# 无法解析: "

# option keys are matched in lower case
FIELD_NAMES: Mapping[str, str] = MappingProxyType(
    {
        "arch": "Architectures",
        "signed-by": "Signed-By",
        "lang": "Languages",
        "target": "Targets",
        "pdiffs": "PDiffs",
        "by-hash": "By-Hash",
        "trusted": "Trusted",
    }
)

EXAMPLE_SOURCES = """\
deb http://archive.ubuntu.com/ubuntu jammy main restricted
deb [arch=amd64 signed-by=/usr/share/keyrings/example.gpg] https://example.com/debian stable main contrib
deb-src http://archive.ubuntu.com/ubuntu jammy main"""


class Error(Exception):
    """Base class of most errors raised by this library."""

    def __repr__(self):
        """Represent the Error."""
        return f"<{type(self).__module__}.{type(self).__name__} {self.args}>"

    @property
    def name(self):
        """Return a string representation of the model plus class."""
        return f"<{type(self).__module__}.{type(self).__name__}>"

    @property
    def message(self):
        """Return the message passed as an argument."""
        return self.args[0]


class InvalidSourceError(Error):
    """Exceptions for invalid source entries."""


class SourceType(Enum):
    """The kinds of archive a source entry can point at."""

    Binary = "deb"
    Source = "deb-src"


class SourceEntry:
    """A single APT source entry, as read from a one-line-style definition.

    `components` is kept as written, including any inner whitespace, and
    `options` holds the bracketed `key=value` pairs in the order they appeared.
    Keys are not normalised; they are only lower-cased when looking up their
    deb822 field name.
    """

    def __init__(
        self,
        repotype: SourceType | str,
        uri: str,
        suite: str,
        components: str,
        options: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        try:
            self._type = SourceType(repotype)
        except ValueError:
            raise InvalidSourceError(
                f"source type must be one of {', '.join(VALID_SOURCE_TYPES)}, not '{repotype}'"
            ) from None
        self._uri = uri
        self._suite = suite
        self._components = components
        self._options = tuple(options) if options else ()

    def __eq__(self, other: object) -> bool:
        """Equality for comparison.

        Two entries are equal when every field, including option order, matches.
        """
        if not isinstance(other, SourceEntry):
            return NotImplemented
        return (
            self._type,
            self._uri,
            self._suite,
            self._components,
            self._options,
        ) == (other._type, other._uri, other._suite, other._components, other._options)

    def __hash__(self):
        """Return a hash of the entry's fields."""
        return hash((self._type, self._uri, self._suite, self._components, self._options))

    def __repr__(self):
        """Represent the entry."""
        return "<{}.{}: {}>".format(self.__module__, self.__class__.__name__, self.__dict__)

    def __str__(self):
        """Return the deb822 rendering of the entry."""
        return self.to_deb822()

    @property
    def type(self) -> SourceType:
        """Return whether it is binary or source."""
        return self._type

    @property
    def uri(self) -> str:
        """Return the URI."""
        return self._uri

    @property
    def suite(self) -> str:
        """Return the suite (release) name."""
        return self._suite

    @property
    def components(self) -> str:
        """Return the components, exactly as written."""
        return self._components

    @property
    def options(self) -> tuple[tuple[str, str], ...]:
        """Return the bracketed options as ordered key/value pairs."""
        return self._options

    def fields(self) -> list[tuple[str, str]]:
        """Return the deb822 fields for this entry, in output order."""
        fields = [
            ("Types", self._type.value),
            ("URIs", self._uri),
            ("Suites", self._suite),
            ("Components", self._components),
        ]
        fields.extend((field_name(key), value) for key, value in self._options)
        return fields

    def to_deb822(self) -> str:
        """Render the entry as a deb822 stanza, one field per line."""
        return "".join(f"{name}: {value}\n" for name, value in self.fields())


def field_name(key: str) -> str:
    """Return the deb822 field name for a one-line-style option key.

    Known keys are looked up case-insensitively. Anything else keeps its
    spelling with only the first character upper-cased, so `foo-bar`
    becomes `Foo-bar`.
    """
    try:
        return FIELD_NAMES[key.lower()]
    except KeyError:
        return key[:1].upper() + key[1:]


def _parse_options(options: str) -> Iterator[tuple[str, str]]:
    """Yield key/value pairs from the inside of an options bracket.

    Tokens missing a `=`, a key or a value are skipped.
    """
    for token in OPTIONS_SEPARATOR.split(options):
        key, _, value = token.partition("=")
        if key and value:
            yield key, value
        elif token:
            logger.debug("ignoring malformed source option: '%s'", token)


def parse_line(line: str) -> SourceEntry | None:
    """Parse a single one-line-style source entry.

    Args:
        line: a `sources.list` entry; surrounding whitespace is ignored

    Returns:
        a `SourceEntry`, or None if the line is not a valid entry. Comments
        are never valid entries.
    """
    match = ONELINE_MATCHER.fullmatch(line.strip())
    if match is None:
        return None
    repotype, options, uri, suite, components = match.groups()
    return SourceEntry(
        repotype,
        uri,
        suite,
        components,
        _parse_options(options) if options else None,
    )


def _convert_line(line: str) -> tuple[str, bool]:
    """Convert one trimmed line, also returning False if it was unparseable."""
    if line.startswith("#"):
        return f"# {line[1:].strip()}", True

    entry = parse_line(line)
    if entry is None:
        logger.debug("could not parse source line: '%s'", line)
        return f"{UNPARSEABLE_PREFIX}{line}", False
    return entry.to_deb822(), True


def convert_line(line: str) -> str:
    """Convert one line into its deb822 block, a comment or an unparseable marker."""
    result, _ = _convert_line(line.strip())
    return result


def _iter_lines(text: str) -> Iterator[str]:
    for line in text.strip().split("\n"):
        line = line.strip()
        if line:
            yield line


def convert_lines(text: str) -> list[str]:
    """Convert a block of text, returning one result per non-empty line."""
    return [_convert_line(line)[0] for line in _iter_lines(text)]


def convert_with_errors(text: str) -> tuple[str, list[str]]:
    """Convert a block of text and report which lines could not be parsed.

    Returns:
        the same output as `convert`, and the unparseable lines in input order
    """
    results: list[str] = []
    skipped: list[str] = []
    for line in _iter_lines(text):
        result, parsed = _convert_line(line)
        results.append(result)
        if not parsed:
            skipped.append(line)
    logger.debug("converted %d source line(s), %d unparseable", len(results), len(skipped))
    return "\n".join(results), skipped


def convert(text: str) -> str:
    """Convert one-line-style APT sources into deb822 format.

    Args:
        text: any number of `sources.list` lines; blank lines are dropped

    Returns:
        the converted blocks joined by newlines. Each stanza ends with its own
        newline, so consecutive stanzas are separated by a blank line.
    """
    result, _ = convert_with_errors(text)
    return result


def unparseable_lines(text: str) -> list[str]:
    """Return the non-comment lines of `text` that are not valid source entries."""
    _, skipped = convert_with_errors(text)
    return skipped


def main(argv: Sequence[str] | None = None) -> int:
    """Convert a `sources.list` style file to deb822 from the command line.

    Input files are read and output files written as UTF-8. Files that cannot
    be read or decoded are reported through the usual argparse error exit.

    Returns:
        0 if every line was converted, 1 if any line was unparseable.
    """
    parser = argparse.ArgumentParser(
        prog="apt-deb822",
        description="Convert one-line-style APT sources to deb822 format.",
    )
    parser.add_argument("-d", "--debug", action="store_true")
    parser.add_argument("-o", "--output", type=str, help="write to this file instead of stdout")
    parser.add_argument(
        "--example", action="store_true", help="convert a built-in example instead of input"
    )
    parser.add_argument("file", nargs="?", default="-", help="sources file to read (default: stdin)")
    args = parser.parse_args(argv)

    previous_level = logger.level
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    logger.setLevel(logging.DEBUG if args.debug else logging.INFO)
    logger.addHandler(console_handler)
    try:
        if args.example:
            text = EXAMPLE_SOURCES
        elif args.file == "-":
            text = sys.stdin.read()
        else:
            try:
                with open(args.file, encoding="utf-8") as f:
                    text = f.read()
            except (OSError, UnicodeDecodeError) as e:
                parser.error(f"could not read '{args.file}': {e}")

        result, skipped = convert_with_errors(text)
        # files end with a newline even when the last block is a comment
        if result and not result.endswith("\n"):
            result += "\n"
        if args.output:
            with open(args.output, "w", encoding="utf-8") as f:
                f.write(result)
            logger.info("wrote deb822 sources to %s", args.output)
        else:
            sys.stdout.write(result)

        if skipped:
            logger.warning("%d line(s) could not be parsed", len(skipped))
            return 1
        return 0
    finally:
        logger.removeHandler(console_handler)
        logger.setLevel(previous_level)


if __name__ == "__main__":  # pragma: nocover
    sys.exit(main())
