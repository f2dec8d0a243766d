"""
Unicode domain tables.

Each builder returns an immutable mapping of table name to domain:
code point ranges (inclusive (lo, hi) pairs) or explicit key sequences.
Tables are built once at startup, for the selected families only, and
passed to the case factories.

Dependencies:
    - regex (script, binary and emoji property lookup)
    - emoji (RGI emoji sequences)
"""

from __future__ import annotations

import functools
import logging
import unicodedata
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

import emoji
import regex

logger = logging.getLogger(__name__)

Range = Tuple[int, int]
RangeTables = Mapping[str, Tuple[Range, ...]]
SequenceTables = Mapping[str, Tuple[str, ...]]

MAX_CODE_POINT = 0x10FFFF
SURROGATES: Range = (0xD800, 0xDFFF)

# Tables whose elements are not safe as single text characters; skipped
# when key lists are built.
UNSAFE_TABLES = frozenset({"Noncharacter_Code_Point", "Cs"})

SCRIPT_NAMES = (
    "Adlam", "Ahom", "Anatolian_Hieroglyphs", "Arabic", "Armenian", "Avestan",
    "Balinese", "Bamum", "Bassa_Vah", "Batak", "Bengali", "Bhaiksuki", "Bopomofo",
    "Brahmi", "Braille", "Buginese", "Buhid", "Canadian_Aboriginal", "Carian",
    "Caucasian_Albanian", "Chakma", "Cham", "Cherokee", "Chorasmian", "Common",
    "Coptic", "Cuneiform", "Cypriot", "Cypro_Minoan", "Cyrillic", "Deseret",
    "Devanagari", "Dives_Akuru", "Dogra", "Duployan", "Egyptian_Hieroglyphs",
    "Elbasan", "Elymaic", "Ethiopic", "Georgian", "Glagolitic", "Gothic", "Grantha",
    "Greek", "Gujarati", "Gunjala_Gondi", "Gurmukhi", "Han", "Hangul",
    "Hanifi_Rohingya", "Hanunoo", "Hatran", "Hebrew", "Hiragana", "Imperial_Aramaic",
    "Inherited", "Inscriptional_Pahlavi", "Inscriptional_Parthian", "Javanese",
    "Kaithi", "Kannada", "Katakana", "Kayah_Li", "Kharoshthi", "Khitan_Small_Script",
    "Khmer", "Khojki", "Khudawadi", "Lao", "Latin", "Lepcha", "Limbu", "Linear_A",
    "Linear_B", "Lisu", "Lycian", "Lydian", "Mahajani", "Makasar", "Malayalam",
    "Mandaic", "Manichaean", "Marchen", "Masaram_Gondi", "Medefaidrin",
    "Meetei_Mayek", "Mende_Kikakui", "Meroitic_Cursive", "Meroitic_Hieroglyphs",
    "Miao", "Modi", "Mongolian", "Mro", "Multani", "Myanmar", "Nabataean",
    "Nandinagari", "New_Tai_Lue", "Newa", "Nko", "Nushu", "Nyiakeng_Puachue_Hmong",
    "Ogham", "Ol_Chiki", "Old_Hungarian", "Old_Italic", "Old_North_Arabian",
    "Old_Permic", "Old_Persian", "Old_Sogdian", "Old_South_Arabian", "Old_Turkic",
    "Old_Uyghur", "Oriya", "Osage", "Osmanya", "Pahawh_Hmong", "Palmyrene",
    "Pau_Cin_Hau", "Phags_Pa", "Phoenician", "Psalter_Pahlavi", "Rejang", "Runic",
    "Samaritan", "Saurashtra", "Sharada", "Shavian", "Siddham", "SignWriting",
    "Sinhala", "Sogdian", "Sora_Sompeng", "Soyombo", "Sundanese", "Syloti_Nagri",
    "Syriac", "Tagalog", "Tagbanwa", "Tai_Le", "Tai_Tham", "Tai_Viet", "Takri",
    "Tamil", "Tangsa", "Tangut", "Telugu", "Thaana", "Thai", "Tibetan", "Tifinagh",
    "Tirhuta", "Toto", "Ugaritic", "Vai", "Vithkuqi", "Wancho", "Warang_Citi",
    "Yezidi", "Yi", "Zanabazar_Square",
)

PROPERTY_NAMES = (
    "ASCII_Hex_Digit", "Bidi_Control", "Dash", "Deprecated", "Diacritic", "Extender",
    "Hex_Digit", "Hyphen", "IDS_Binary_Operator", "IDS_Trinary_Operator",
    "Ideographic", "Join_Control", "Logical_Order_Exception",
    "Noncharacter_Code_Point", "Other_Alphabetic",
    "Other_Default_Ignorable_Code_Point", "Other_Grapheme_Extend",
    "Other_ID_Continue", "Other_ID_Start", "Other_Lowercase", "Other_Math",
    "Other_Uppercase", "Pattern_Syntax", "Pattern_White_Space",
    "Prepended_Concatenation_Mark", "Quotation_Mark", "Radical",
    "Regional_Indicator", "Sentence_Terminal", "Soft_Dotted", "Terminal_Punctuation",
    "Unified_Ideograph", "Variation_Selector", "White_Space",
)

EMOJI_PROPERTY_NAMES = (
    "Emoji",
    "Emoji_Component",
    "Emoji_Modifier",
    "Emoji_Modifier_Base",
    "Emoji_Presentation",
    "Extended_Pictographic",
)


# --------------------------------------------------------------------------------------
# Range helpers
# --------------------------------------------------------------------------------------


def runs(code_points: Iterable[int]) -> Tuple[Range, ...]:
    """Collapse ascending code points into inclusive ranges"""
    ranges: List[Range] = []
    for cp in code_points:
        if ranges and cp == ranges[-1][1] + 1:
            ranges[-1] = (ranges[-1][0], cp)
        else:
            ranges.append((cp, cp))
    return tuple(ranges)


def without_surrogates(ranges: Iterable[Range]) -> Tuple[Range, ...]:
    lo_s, hi_s = SURROGATES
    result: List[Range] = []
    for lo, hi in ranges:
        if hi < lo_s or lo > hi_s:
            result.append((lo, hi))
            continue
        if lo < lo_s:
            result.append((lo, lo_s - 1))
        if hi > hi_s:
            result.append((hi_s + 1, hi))
    return tuple(result)


def range_size(ranges: Iterable[Range]) -> int:
    return sum(hi - lo + 1 for lo, hi in ranges)


@functools.lru_cache(maxsize=1)
def _all_code_points() -> str:
    # Index i holds chr(i), so match offsets are code points
    return "".join(map(chr, range(MAX_CODE_POINT + 1)))


def _property_ranges(expression: str) -> Tuple[Range, ...]:
    pattern = regex.compile(r"\p{%s}+" % expression)
    return tuple((m.start(), m.end() - 1) for m in pattern.finditer(_all_code_points()))


def _property_tables(names: Sequence[str], expression: str) -> RangeTables:
    tables: Dict[str, Tuple[Range, ...]] = {}
    for name in names:
        try:
            ranges = _property_ranges(expression.format(name))
        except regex.error as e:
            logger.warning("skipping Unicode table %s: %s", name, e)
            continue
        if ranges:
            tables[name] = ranges
    return MappingProxyType(tables)


# --------------------------------------------------------------------------------------
# Table builders
# --------------------------------------------------------------------------------------


def category_tables() -> RangeTables:
    """General categories (Lu, Nd, ...) plus their major classes (L, N, ...)"""
    members: Dict[str, List[int]] = {}
    for cp in range(MAX_CODE_POINT + 1):
        category = unicodedata.category(chr(cp))
        if category == "Cn":
            continue
        members.setdefault(category, []).append(cp)
        members.setdefault(category[0], []).append(cp)
    return MappingProxyType({name: runs(cps) for name, cps in members.items()})


def script_tables() -> RangeTables:
    return _property_tables(SCRIPT_NAMES, "Script={}")


def property_tables() -> RangeTables:
    return _property_tables(PROPERTY_NAMES, "{}")


def emoji_property_tables() -> RangeTables:
    return _property_tables(EMOJI_PROPERTY_NAMES, "{}")


def emoji_sequence_type(sequence: str) -> str:
    """Classify an RGI emoji by its emoji-sequences.txt / emoji-zwj-sequences.txt type"""
    if "\u200d" in sequence:
        return "RGI_Emoji_ZWJ_Sequence"
    if sequence.endswith("\u20e3"):
        return "Emoji_Keycap_Sequence"
    if "\U000e007f" in sequence:
        return "RGI_Emoji_Tag_Sequence"
    if len(sequence) == 2 and all(0x1F1E6 <= ord(c) <= 0x1F1FF for c in sequence):
        return "RGI_Emoji_Flag_Sequence"
    if any(0x1F3FB <= ord(c) <= 0x1F3FF for c in sequence[1:]):
        return "RGI_Emoji_Modifier_Sequence"
    return "Basic_Emoji"


def emoji_sequence_tables() -> SequenceTables:
    fully_qualified = emoji.STATUS["fully_qualified"]
    sequences: Dict[str, List[str]] = {}
    for sequence in sorted(emoji.EMOJI_DATA):
        if emoji.EMOJI_DATA[sequence].get("status") != fully_qualified:
            continue
        sequences.setdefault(emoji_sequence_type(sequence), []).append(sequence)
    return MappingProxyType({name: tuple(seqs) for name, seqs in sequences.items()})


def invalid_character_tables() -> RangeTables:
    """Code points that cannot be encoded as UTF-8 on their own"""
    return MappingProxyType(
        {
            "High_Surrogates": ((0xD800, 0xDBFF),),
            "Low_Surrogates": ((0xDC00, 0xDFFF),),
        }
    )


def _invalid_utf8_bytes() -> Dict[str, List[bytes]]:
    return {
        "Unexpected_Continuation_Bytes": [bytes([b]) for b in range(0x80, 0xC0)],
        "Lonely_Start_Bytes": [bytes([b, 0x20]) for b in range(0xC0, 0xFE)],
        "Last_Byte_Missing": [
            b"\xc0", b"\xe0\x80", b"\xf0\x80\x80", b"\xf8\x80\x80\x80",
            b"\xfc\x80\x80\x80\x80", b"\xdf", b"\xef\xbf", b"\xf7\xbf\xbf",
            b"\xfb\xbf\xbf\xbf", b"\xfd\xbf\xbf\xbf\xbf",
        ],
        "Impossible_Bytes": [b"\xfe", b"\xff", b"\xfe\xfe\xff\xff"],
        "Overlong_Sequences": [
            b"\xc0\xaf", b"\xe0\x80\xaf", b"\xf0\x80\x80\xaf", b"\xf8\x80\x80\x80\xaf",
            b"\xfc\x80\x80\x80\x80\xaf", b"\xc1\xbf", b"\xe0\x9f\xbf", b"\xf0\x8f\xbf\xbf",
            b"\xc0\x80", b"\xe0\x80\x80", b"\xf0\x80\x80\x80",
        ],
        "Encoded_Surrogates": [
            b"\xed\xa0\x80", b"\xed\xad\xbf", b"\xed\xae\x80", b"\xed\xaf\xbf",
            b"\xed\xb0\x80", b"\xed\xbe\x80", b"\xed\xbf\xbf", b"\xed\xa0\x80\xed\xb0\x80",
        ],
    }


def invalid_utf8_tables() -> SequenceTables:
    """
    Malformed UTF-8 byte sequences as keys.

    Bytes are decoded with surrogateescape, so each key carries lone
    surrogates and is rejected when the client encodes it for the wire.
    """
    return MappingProxyType(
        {
            name: tuple(b.decode("utf-8", "surrogateescape") for b in samples)
            for name, samples in _invalid_utf8_bytes().items()
        }
    )
