import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from string import ascii_letters

DIGITS = '0123456789'
WILDCARD = "xX*"
WILDCARD_FIELDS = ("", "*", "X", "x")
IDENTIFIER = ascii_letters + DIGITS + "-"
MAX_NUMERIC = 2 ** 32 - 1

INVALID_VERSION = "<invalid_semver>"
INVALID_RANGE = "<invalid_semver_range>"

logger = logging.getLogger(__name__)

"""################ version ################"""


class VersionPart(IntEnum):
    MAJOR = 0
    MINOR = 1
    PATCH = 2
    PRERELEASE = 3
    BUILD = 4


NUMERIC_PARTS = (VersionPart.MAJOR, VersionPart.MINOR, VersionPart.PATCH)


class Field:
    # accept() returns how many fields to move forward; negative re-feeds the char

    def __init__(self, terminators: "dict[str, int] | None" = None) -> None:
        self.value = ""

        self.__terminators__ = terminators or {}

    def accept(self, char: str) -> int:
        if char in self.__terminators__:
            self.validate()
            return self.__terminators__[char]

        if not self.is_valid(char):
            raise ValueError(f"Unexpected character {char!r}.")

        self.value += char
        return 0

    def is_valid(self, char: str) -> bool:
        return False

    def validate(self) -> None:
        if self.value == "":
            raise ValueError("Empty version field.")


class Prefix(Field):
    def __init__(self) -> None:
        super().__init__(dict.fromkeys(DIGITS, -1))

    def is_valid(self, char: str) -> bool:
        return self.value == "" and char in "v="

    def validate(self) -> None:
        pass


class Numeric(Field):
    def __init__(self, part: VersionPart) -> None:
        terminators = {
            "-": VersionPart.PRERELEASE - part,
            "+": VersionPart.BUILD - part,
        }
        if part < VersionPart.PATCH:
            terminators["."] = 1
        super().__init__(terminators)

    def is_valid(self, char: str) -> bool:
        return char in DIGITS

    def validate(self) -> None:
        super().validate()

        if int(self.value) > MAX_NUMERIC:
            raise ValueError(f"Version number {self.value} is too large.")

    def __int__(self) -> int:
        return int(self.value or "0")


class Identifiers(Field):
    def is_valid(self, char: str) -> bool:
        return char in IDENTIFIER or char == "."

    def validate(self) -> None:
        super().validate()

        if "" in self.value.split("."):
            raise ValueError(f"Empty identifier in {self.value!r}.")

    @property
    def identifiers(self) -> "tuple[str, ...]":
        return tuple(self.value.split(".")) if self.value else ()


def is_numeric(identifier: str) -> bool:
    return identifier != "" and all(char in DIGITS for char in identifier)


def compare_identifiers(identifiers: "tuple[str, ...]", others: "tuple[str, ...]") -> int:
    if identifiers and not others:
        return -1
    if not identifiers and others:
        return 1

    for identifier, other in zip(identifiers, others):
        if is_numeric(identifier) and is_numeric(other):
            identifier, other = int(identifier), int(other)
        if identifier != other:
            return -1 if identifier < other else 1

    if len(identifiers) != len(others):
        return -1 if len(identifiers) < len(others) else 1
    return 0


def _hash_key(identifiers: "tuple[str, ...]") -> tuple:
    return tuple(int(i) if is_numeric(i) else i for i in identifiers)


class Version:
    """MAJOR[.MINOR[.PATCH]][-PRERELEASE][+BUILD]; check is_valid before use."""

    def __init__(self, version: str = None) -> None:
        self.__ids__ = (0, 0, 0)
        self.__prerelease__ = ()
        self.__build__ = ()
        self.__is_valid__ = False

        if version is None:
            return

        try:
            self.__parse__(version)
        except ValueError as e:
            logger.debug("Invalid version %r: %s", version, e)
        else:
            self.__is_valid__ = True

    @classmethod
    def parse(cls, version: str) -> "Version":
        return cls(version)

    @classmethod
    def _from_parts(cls, ids, prerelease=(), build=()) -> "Version":
        result = cls()
        result.__ids__ = tuple(ids)
        result.__prerelease__ = tuple(prerelease)
        result.__build__ = tuple(build)
        result.__is_valid__ = True
        return result

    def __parse__(self, version: str) -> None:
        if version == "":
            raise ValueError("Empty version.")

        parts = [
            Prefix(),
            Numeric(VersionPart.MAJOR),
            Numeric(VersionPart.MINOR),
            Numeric(VersionPart.PATCH),
            Identifiers({"+": 1}),
            Identifiers(),
        ]
        current = 0
        for char in version:
            step = parts[current].accept(char)
            current += abs(step)
            if step < 0:
                parts[current].accept(char)

        if current == 0:
            raise ValueError("Missing major version.")
        parts[current].validate()

        self.__ids__ = tuple(int(part) for part in parts[1:4])
        self.__prerelease__ = parts[4].identifiers
        self.__build__ = parts[5].identifiers

    def __require_valid__(self) -> None:
        if not self.__is_valid__:
            raise RuntimeError("Operation on an invalid version.")

    @property
    def is_valid(self) -> bool:
        return self.__is_valid__

    @property
    def is_stable(self) -> bool:
        return not self.__prerelease__

    @property
    def major(self) -> int:
        return self.__ids__[VersionPart.MAJOR]

    @property
    def minor(self) -> int:
        return self.__ids__[VersionPart.MINOR]

    @property
    def patch(self) -> int:
        return self.__ids__[VersionPart.PATCH]

    @property
    def prerelease(self) -> "tuple[str, ...]":
        return self.__prerelease__

    @property
    def build(self) -> "tuple[str, ...]":
        return self.__build__

    def increment(self, part: VersionPart) -> "Version":
        self.__require_valid__()
        if part == VersionPart.BUILD:
            raise RuntimeError("Build metadata cannot be incremented.")

        ids = list(self.__ids__[:part]) + [0] * (VersionPart.PRERELEASE - part)
        if part < VersionPart.PRERELEASE:
            if self.__ids__[part] >= MAX_NUMERIC:
                raise RuntimeError(f"Cannot increment {VersionPart(part).name.lower()} of {self} past {MAX_NUMERIC}.")
            ids[part] = self.__ids__[part] + 1
        return Version._from_parts(ids)

    def _with_prerelease0(self) -> "Version":
        # "-0" is the lowest prerelease, so it bounds every prerelease of this triple
        if self.__prerelease__:
            return self
        return Version._from_parts(self.__ids__, ("0",), self.__build__)

    def _without_build(self) -> "Version":
        if not self.__build__:
            return self
        return Version._from_parts(self.__ids__, self.__prerelease__)

    def compare(self, version: "Version") -> int:
        self.__require_valid__()
        version.__require_valid__()

        if self.__ids__ != version.__ids__:
            return -1 if self.__ids__ < version.__ids__ else 1

        result = compare_identifiers(self.__prerelease__, version.__prerelease__)
        if result != 0:
            return result
        return compare_identifiers(self.__build__, version.__build__)

    def differ_at(self, version: "Version") -> VersionPart:
        """Return the first part two different versions diverge on."""
        if self == version:
            raise RuntimeError("differ_at() requires two different versions.")

        for part in NUMERIC_PARTS:
            if self.__ids__[part] != version.__ids__[part]:
                return part

        if self.__prerelease__ != version.__prerelease__:
            return VersionPart.PRERELEASE

        if self.__build__ != version.__build__:
            return VersionPart.BUILD

        raise RuntimeError(f"{self} and {version} do not differ.")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) < 0

    def __le__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) <= 0

    def __gt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) > 0

    def __ge__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.compare(other) >= 0

    def __hash__(self) -> int:
        if not self.__is_valid__:
            return hash(INVALID_VERSION)
        return hash((self.__ids__, _hash_key(self.__prerelease__), _hash_key(self.__build__)))

    def __str__(self) -> str:
        if not self.__is_valid__:
            return INVALID_VERSION

        value = ".".join(str(i) for i in self.__ids__)
        if self.__prerelease__:
            value += "-" + ".".join(self.__prerelease__)
        if self.__build__:
            value += "+" + ".".join(self.__build__)
        return value

    def __repr__(self) -> str:
        return f"Version({str(self)!r})"


"""################ version range ################"""


class Comparator(Enum):
    LT = "<"
    LE = "<="
    EQ = "="
    GE = ">="
    GT = ">"

    def holds(self, result: int) -> bool:
        """Tell whether a ``Version.compare`` result passes this comparator."""
        if self is Comparator.GT:
            return result > 0
        if self is Comparator.LT:
            return result < 0
        if self is Comparator.GE:
            return result >= 0
        if self is Comparator.LE:
            return result <= 0
        return result == 0


class RangeOperator(Enum):
    NONE = ""
    EQ = "="
    LT = "<"
    LE = "<="
    GE = ">="
    GT = ">"
    TILDE = "~"
    TILDE_GT = "~>"
    CARET = "^"


# longest spelling first, bare version last
SCAN_ORDER = (
    RangeOperator.TILDE_GT,
    RangeOperator.TILDE,
    RangeOperator.CARET,
    RangeOperator.LE,
    RangeOperator.LT,
    RangeOperator.GE,
    RangeOperator.GT,
    RangeOperator.EQ,
    RangeOperator.NONE,
)


@dataclass(frozen=True)
class Comparison:
    comparator: Comparator
    version: Version

    def satisfied_by(self, version: Version) -> bool:
        return self.comparator.holds(version.compare(self.version))

    def __str__(self) -> str:
        return self.comparator.value + str(self.version)


def _field_end(text: str, index: int) -> "int | None":
    if index >= len(text):
        return None
    if text[index] in WILDCARD:
        return index + 1
    end = index
    while end < len(text) and text[end] in DIGITS:
        end += 1
    return end if end > index else None


class Term:
    """One operator and (possibly partial) version found in range text."""

    def __init__(self, operator: RangeOperator, fields: "list[str]", suffix: str, start: int, end: int) -> None:
        self.operator = operator
        self.fields = fields
        self.suffix = suffix
        self.start = start
        self.end = end

    @classmethod
    def search(cls, text: str, position: int) -> "Term | None":
        """Find the leftmost term at or after ``position``."""
        for start in range(position, len(text)):
            term = cls.match(text, start)
            if term is not None:
                return term
        return None

    @classmethod
    def match(cls, text: str, start: int) -> "Term | None":
        for operator in SCAN_ORDER:
            if not text.startswith(operator.value, start):
                continue

            index = start + len(operator.value)
            if text.startswith("v", index):
                index += 1
            end = _field_end(text, index)
            if end is None:
                continue

            fields = [text[index:end]]
            index = end
            while len(fields) < 3 and text.startswith(".", index):
                end = _field_end(text, index + 1)
                if end is None:
                    break
                fields.append(text[index + 1:end])
                index = end
            fields += [""] * (3 - len(fields))

            end = index
            while end < len(text) and not text[end].isspace():
                end += 1
            return cls(operator, fields, text[index:end], start, end)
        return None

    def __str__(self) -> str:
        return self.operator.value + ".".join(f for f in self.fields if f) + self.suffix


def wildcard_at(fields) -> VersionPart:
    """Return the first of major, minor and patch left unspecified.

    ``PRERELEASE`` stands for a fully specified version.
    """
    for part in NUMERIC_PARTS:
        if fields[part] in WILDCARD_FIELDS:
            return part
    return VersionPart.PRERELEASE


def expand(fields, suffix: str = "") -> str:
    """Turn range fields into concrete version text, wildcards set to 0.

    Returns an empty string when anything is specified after a wildcard.
    """
    wildcard = wildcard_at(fields)
    fields = list(fields)
    if wildcard != VersionPart.PRERELEASE:
        if any(field not in WILDCARD_FIELDS for field in fields[wildcard + 1:] + [suffix]):
            return ""
        fields[wildcard:] = ["0"] * (VersionPart.PRERELEASE - wildcard)
    return ".".join(fields) + suffix


def _ceiling(version: Version, part: VersionPart) -> Version:
    if getattr(version, VersionPart(part).name.lower()) >= MAX_NUMERIC:
        raise ValueError(f"No upper bound above {version}.")
    return version.increment(part)._with_prerelease0()


def expand_term(operator: RangeOperator, wildcard: VersionPart, version: Version) -> "list[Comparison]":
    """Rewrite one range term as simple comparisons."""
    floor = version._with_prerelease0()

    if operator in (RangeOperator.NONE, RangeOperator.EQ):
        if wildcard == VersionPart.MAJOR:
            return [Comparison(Comparator.GE, floor)]
        if wildcard == VersionPart.PRERELEASE:
            return [Comparison(Comparator.EQ, version)]
        return [Comparison(Comparator.GE, floor), Comparison(Comparator.LT, _ceiling(version, VersionPart(wildcard - 1)))]

    if operator is RangeOperator.LT:
        return [Comparison(Comparator.LT, floor)]

    if operator in (RangeOperator.LE, RangeOperator.GE, RangeOperator.GT):
        bound = floor if wildcard != VersionPart.PRERELEASE else version
        return [Comparison(Comparator(operator.value), bound)]

    if wildcard == VersionPart.MAJOR:
        raise ValueError(f"Operator {operator.value!r} needs a major version.")

    if operator is RangeOperator.CARET:
        if version.prerelease:
            raise ValueError("Caret ranges do not take a prerelease.")
        if version.major != 0:
            bump = VersionPart.MAJOR
        elif version.minor != 0:
            bump = VersionPart.MINOR
        else:
            bump = VersionPart.PATCH
    elif operator is RangeOperator.TILDE:
        bump = VersionPart(wildcard - 1) if wildcard != VersionPart.PRERELEASE else VersionPart.MINOR
    else:
        bump = VersionPart.MAJOR if wildcard == VersionPart.MINOR else VersionPart(wildcard - 2)

    return [Comparison(Comparator.GE, floor), Comparison(Comparator.LT, _ceiling(version, bump))]


class VersionRange:
    """A range such as ``>=1.2.7 <1.3.0 || ~2.4``; check is_valid before use."""

    def __init__(self, expression: str = None) -> None:
        self.__groups__ = ()
        self.__is_valid__ = False

        if expression is None:
            return

        try:
            groups = self.__parse__(expression)
        except ValueError as e:
            logger.debug("Invalid version range %r: %s", expression, e)
        else:
            self.__groups__ = tuple(tuple(group) for group in groups)
            self.__is_valid__ = True

    @classmethod
    def parse(cls, expression: str) -> "VersionRange":
        return cls(expression)

    @staticmethod
    def __parse__(expression: str) -> "list[list[Comparison]]":
        groups = [[]]

        position = 0
        while expression[position:].strip():
            term = Term.search(expression, position)
            if term is None:
                raise ValueError(f"No version in {expression[position:]!r}.")

            expanded = expand(term.fields, term.suffix)
            if expanded == "":
                raise ValueError(f"Term {str(term)!r} specifies a part after a wildcard.")
            version = Version(expanded)
            if not version.is_valid:
                raise ValueError(f"Term {str(term)!r} is not a valid version.")

            operator = term.operator
            wildcard = wildcard_at(term.fields)
            separator = expression[position:term.start].strip()
            if separator == "-":
                if (not groups[-1] or groups[-1][-1].comparator is not Comparator.EQ
                        or operator is not RangeOperator.NONE or wildcard != VersionPart.PRERELEASE):
                    raise ValueError("Hyphen ranges need two full versions.")
                groups[-1][-1] = Comparison(Comparator.GE, groups[-1][-1].version)
                operator = RangeOperator.LE
            elif separator == "||":
                if not groups[-1]:
                    raise ValueError("Empty alternative before '||'.")
                groups.append([])
            elif separator != "":
                raise ValueError(f"Unexpected separator {separator!r}.")

            groups[-1].extend(expand_term(operator, wildcard, version))
            position = term.end

        if not groups[-1]:
            raise ValueError("Empty version range.")
        return groups

    @property
    def is_valid(self) -> bool:
        return self.__is_valid__

    @property
    def groups(self) -> "tuple[tuple[Comparison, ...], ...]":
        return self.__groups__

    def satisfied_by(self, version: "Version | str") -> bool:
        if not self.__is_valid__:
            raise RuntimeError("Cannot match against an invalid version range.")

        version = _as_version(version)
        version.__require_valid__()
        version = version._without_build()

        for group in self.__groups__:
            if all(comparison.satisfied_by(version) for comparison in group):
                return True
        return False

    def __contains__(self, version: "Version | str") -> bool:
        return self.satisfied_by(version)

    def __str__(self) -> str:
        if not self.__is_valid__:
            return INVALID_RANGE
        return " || ".join(" ".join(str(comparison) for comparison in group) for group in self.__groups__)

    def __repr__(self) -> str:
        return f"VersionRange({str(self)!r})"


"""################ range queries ################"""


def _as_version(version: "Version | str") -> Version:
    return version if isinstance(version, Version) else Version(version)


def _as_range(version_range: "VersionRange | str") -> VersionRange:
    return version_range if isinstance(version_range, VersionRange) else VersionRange(version_range)


def satisfies(version: "Version | str", version_range: "VersionRange | str") -> bool:
    """Check if ``version`` satisfies ``version_range``, ignoring build metadata."""
    return _as_range(version_range).satisfied_by(version)


def max_satisfying(versions, version_range: "VersionRange | str") -> Version:
    """Return the greatest of ``versions`` that satisfies ``version_range``.

    Build metadata counts when ranking candidates. Candidates that compare
    equal keep their input order. An invalid ``Version`` is returned when
    nothing matches.
    """
    version_range = _as_range(version_range)
    if not version_range.is_valid:
        raise RuntimeError("Cannot match against an invalid version range.")

    candidates = [_as_version(version) for version in versions]
    for candidate in candidates:
        candidate.__require_valid__()

    for candidate in sorted(candidates, reverse=True):
        if version_range.satisfied_by(candidate):
            return candidate
    return Version()
