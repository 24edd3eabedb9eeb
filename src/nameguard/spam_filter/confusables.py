"""Lookup table for Unicode confusable characters.

Maps code points that render like Latin letters to the lower-case Latin
letter they imitate. Fullwidth forms, mathematical alphanumerics and
enclosed letters are left out on purpose: NFKC already folds them to ASCII
before the table is consulted.
"""

from __future__ import annotations

import unicodedata

CONFUSABLES: dict[str, str] = {
    # --- Cyrillic capitals ---
    "Ѕ": "s",  # CYRILLIC CAPITAL LETTER DZE
    "І": "i",  # CYRILLIC CAPITAL LETTER BYELORUSSIAN-UKRAINIAN I
    "Ј": "j",  # CYRILLIC CAPITAL LETTER JE
    "А": "a",  # CYRILLIC CAPITAL LETTER A
    "В": "b",  # CYRILLIC CAPITAL LETTER VE
    "Е": "e",  # CYRILLIC CAPITAL LETTER IE
    "К": "k",  # CYRILLIC CAPITAL LETTER KA
    "М": "m",  # CYRILLIC CAPITAL LETTER EM
    "Н": "h",  # CYRILLIC CAPITAL LETTER EN
    "О": "o",  # CYRILLIC CAPITAL LETTER O
    "Р": "p",  # CYRILLIC CAPITAL LETTER ER
    "С": "c",  # CYRILLIC CAPITAL LETTER ES
    "Т": "t",  # CYRILLIC CAPITAL LETTER TE
    "У": "y",  # CYRILLIC CAPITAL LETTER U
    "Х": "x",  # CYRILLIC CAPITAL LETTER HA
    "Ь": "b",  # CYRILLIC CAPITAL LETTER SOFT SIGN
    "Ү": "y",  # CYRILLIC CAPITAL LETTER STRAIGHT U
    "Ӏ": "l",  # CYRILLIC LETTER PALOCHKA
    "Ԁ": "d",  # CYRILLIC CAPITAL LETTER KOMI DE
    "Ԛ": "q",  # CYRILLIC CAPITAL LETTER QA
    "Ԝ": "w",  # CYRILLIC CAPITAL LETTER WE
    # --- Cyrillic small letters ---
    "а": "a",  # CYRILLIC SMALL LETTER A
    "е": "e",  # CYRILLIC SMALL LETTER IE
    "к": "k",  # CYRILLIC SMALL LETTER KA
    "о": "o",  # CYRILLIC SMALL LETTER O
    "р": "p",  # CYRILLIC SMALL LETTER ER
    "с": "c",  # CYRILLIC SMALL LETTER ES
    "у": "y",  # CYRILLIC SMALL LETTER U
    "х": "x",  # CYRILLIC SMALL LETTER HA
    "ь": "b",  # CYRILLIC SMALL LETTER SOFT SIGN
    "ё": "e",  # CYRILLIC SMALL LETTER IO
    "ѕ": "s",  # CYRILLIC SMALL LETTER DZE
    "і": "i",  # CYRILLIC SMALL LETTER BYELORUSSIAN-UKRAINIAN I
    "ї": "i",  # CYRILLIC SMALL LETTER YI
    "ј": "j",  # CYRILLIC SMALL LETTER JE
    "ү": "y",  # CYRILLIC SMALL LETTER STRAIGHT U
    "һ": "h",  # CYRILLIC SMALL LETTER SHHA
    "ӏ": "l",  # CYRILLIC SMALL LETTER PALOCHKA
    "ԁ": "d",  # CYRILLIC SMALL LETTER KOMI DE
    "ԛ": "q",  # CYRILLIC SMALL LETTER QA
    "ԝ": "w",  # CYRILLIC SMALL LETTER WE
    # --- Greek capitals (Xi is never substituted, see normalizer) ---
    "Α": "a",  # GREEK CAPITAL LETTER ALPHA
    "Β": "b",  # GREEK CAPITAL LETTER BETA
    "Ε": "e",  # GREEK CAPITAL LETTER EPSILON
    "Ζ": "z",  # GREEK CAPITAL LETTER ZETA
    "Η": "h",  # GREEK CAPITAL LETTER ETA
    "Ι": "i",  # GREEK CAPITAL LETTER IOTA
    "Κ": "k",  # GREEK CAPITAL LETTER KAPPA
    "Μ": "m",  # GREEK CAPITAL LETTER MU
    "Ν": "n",  # GREEK CAPITAL LETTER NU
    "Ο": "o",  # GREEK CAPITAL LETTER OMICRON
    "Ρ": "p",  # GREEK CAPITAL LETTER RHO
    "Τ": "t",  # GREEK CAPITAL LETTER TAU
    "Υ": "y",  # GREEK CAPITAL LETTER UPSILON
    "Χ": "x",  # GREEK CAPITAL LETTER CHI
    # --- Greek small letters ---
    "α": "a",  # GREEK SMALL LETTER ALPHA
    "γ": "y",  # GREEK SMALL LETTER GAMMA
    "ε": "e",  # GREEK SMALL LETTER EPSILON
    "η": "n",  # GREEK SMALL LETTER ETA
    "ι": "i",  # GREEK SMALL LETTER IOTA
    "κ": "k",  # GREEK SMALL LETTER KAPPA
    "ν": "v",  # GREEK SMALL LETTER NU
    "ο": "o",  # GREEK SMALL LETTER OMICRON
    "ρ": "p",  # GREEK SMALL LETTER RHO
    "τ": "t",  # GREEK SMALL LETTER TAU
    "υ": "u",  # GREEK SMALL LETTER UPSILON
    "χ": "x",  # GREEK SMALL LETTER CHI
    "ω": "w",  # GREEK SMALL LETTER OMEGA
    "ϳ": "j",  # GREEK LETTER YOT
    # --- Armenian ---
    "Ս": "u",  # ARMENIAN CAPITAL LETTER SEH
    "Տ": "s",  # ARMENIAN CAPITAL LETTER TIWN
    "Օ": "o",  # ARMENIAN CAPITAL LETTER OH
    "զ": "q",  # ARMENIAN SMALL LETTER ZA
    "հ": "h",  # ARMENIAN SMALL LETTER HO
    "ո": "n",  # ARMENIAN SMALL LETTER VO
    "ս": "u",  # ARMENIAN SMALL LETTER SEH
    "ց": "g",  # ARMENIAN SMALL LETTER CO
    "օ": "o",  # ARMENIAN SMALL LETTER OH
    # --- Cherokee ---
    "Ꭰ": "d",  # CHEROKEE LETTER A
    "Ꭱ": "r",  # CHEROKEE LETTER E
    "Ꭲ": "t",  # CHEROKEE LETTER I
    "Ꭵ": "i",  # CHEROKEE LETTER V
    "Ꭺ": "a",  # CHEROKEE LETTER GO
    "Ꭼ": "e",  # CHEROKEE LETTER GV
    "Ꮃ": "w",  # CHEROKEE LETTER LA
    "Ꮇ": "m",  # CHEROKEE LETTER LU
    "Ꮋ": "h",  # CHEROKEE LETTER MI
    "Ꮐ": "g",  # CHEROKEE LETTER NAH
    "Ꮓ": "z",  # CHEROKEE LETTER NO
    "Ꮩ": "v",  # CHEROKEE LETTER DO
    "Ꮪ": "s",  # CHEROKEE LETTER DU
    "Ꮮ": "l",  # CHEROKEE LETTER TLE
    "Ꮯ": "c",  # CHEROKEE LETTER TLI
    "Ꮲ": "p",  # CHEROKEE LETTER TLV
    "Ꮶ": "k",  # CHEROKEE LETTER TSO
    "Ᏼ": "b",  # CHEROKEE LETTER YV
    # --- Lisu ---
    "ꓐ": "b",  # LISU LETTER BA
    "ꓑ": "p",  # LISU LETTER PA
    "ꓓ": "d",  # LISU LETTER DA
    "ꓔ": "t",  # LISU LETTER TA
    "ꓖ": "g",  # LISU LETTER GA
    "ꓗ": "k",  # LISU LETTER KA
    "ꓙ": "j",  # LISU LETTER JA
    "ꓚ": "c",  # LISU LETTER CA
    "ꓜ": "z",  # LISU LETTER DZA
    "ꓝ": "f",  # LISU LETTER TSA
    "ꓟ": "m",  # LISU LETTER MA
    "ꓠ": "n",  # LISU LETTER NA
    "ꓡ": "l",  # LISU LETTER LA
    "ꓢ": "s",  # LISU LETTER SA
    "ꓣ": "r",  # LISU LETTER ZHA
    "ꓦ": "v",  # LISU LETTER HA
    "ꓧ": "h",  # LISU LETTER XA
    "ꓪ": "w",  # LISU LETTER WA
    "ꓫ": "x",  # LISU LETTER SHA
    "ꓬ": "y",  # LISU LETTER YA
    "ꓮ": "a",  # LISU LETTER A
    "ꓰ": "e",  # LISU LETTER E
    "ꓲ": "i",  # LISU LETTER I
    "ꓳ": "o",  # LISU LETTER O
    "ꓴ": "u",  # LISU LETTER U
    # --- Latin small capitals ---
    "ᴀ": "a",  # LATIN LETTER SMALL CAPITAL A
    "ʙ": "b",  # LATIN LETTER SMALL CAPITAL B
    "ᴄ": "c",  # LATIN LETTER SMALL CAPITAL C
    "ᴅ": "d",  # LATIN LETTER SMALL CAPITAL D
    "ᴇ": "e",  # LATIN LETTER SMALL CAPITAL E
    "ꜰ": "f",  # LATIN LETTER SMALL CAPITAL F
    "ɢ": "g",  # LATIN LETTER SMALL CAPITAL G
    "ʜ": "h",  # LATIN LETTER SMALL CAPITAL H
    "ɪ": "i",  # LATIN LETTER SMALL CAPITAL I
    "ᴊ": "j",  # LATIN LETTER SMALL CAPITAL J
    "ᴋ": "k",  # LATIN LETTER SMALL CAPITAL K
    "ʟ": "l",  # LATIN LETTER SMALL CAPITAL L
    "ᴍ": "m",  # LATIN LETTER SMALL CAPITAL M
    "ɴ": "n",  # LATIN LETTER SMALL CAPITAL N
    "ᴏ": "o",  # LATIN LETTER SMALL CAPITAL O
    "ᴘ": "p",  # LATIN LETTER SMALL CAPITAL P
    "ʀ": "r",  # LATIN LETTER SMALL CAPITAL R
    "ꜱ": "s",  # LATIN LETTER SMALL CAPITAL S
    "ᴛ": "t",  # LATIN LETTER SMALL CAPITAL T
    "ᴜ": "u",  # LATIN LETTER SMALL CAPITAL U
    "ᴠ": "v",  # LATIN LETTER SMALL CAPITAL V
    "ᴡ": "w",  # LATIN LETTER SMALL CAPITAL W
    "ʏ": "y",  # LATIN LETTER SMALL CAPITAL Y
    "ᴢ": "z",  # LATIN LETTER SMALL CAPITAL Z
    # --- Latin extended and IPA look-alikes ---
    "Ø": "o",  # LATIN CAPITAL LETTER O WITH STROKE
    "ð": "d",  # LATIN SMALL LETTER ETH
    "ø": "o",  # LATIN SMALL LETTER O WITH STROKE
    "Đ": "d",  # LATIN CAPITAL LETTER D WITH STROKE
    "đ": "d",  # LATIN SMALL LETTER D WITH STROKE
    "Ħ": "h",  # LATIN CAPITAL LETTER H WITH STROKE
    "ħ": "h",  # LATIN SMALL LETTER H WITH STROKE
    "ı": "i",  # LATIN SMALL LETTER DOTLESS I
    "Ł": "l",  # LATIN CAPITAL LETTER L WITH STROKE
    "ł": "l",  # LATIN SMALL LETTER L WITH STROKE
    "Ŧ": "t",  # LATIN CAPITAL LETTER T WITH STROKE
    "ŧ": "t",  # LATIN SMALL LETTER T WITH STROKE
    "ƅ": "b",  # LATIN SMALL LETTER TONE SIX
    "Ɩ": "l",  # LATIN CAPITAL LETTER IOTA
    "ƚ": "l",  # LATIN SMALL LETTER L WITH BAR
    "ƶ": "z",  # LATIN SMALL LETTER Z WITH STROKE
    "ǀ": "l",  # LATIN LETTER DENTAL CLICK
    "ȷ": "j",  # LATIN SMALL LETTER DOTLESS J
    "ɑ": "a",  # LATIN SMALL LETTER ALPHA
    "ɓ": "b",  # LATIN SMALL LETTER B WITH HOOK
    "ɔ": "c",  # LATIN SMALL LETTER OPEN O
    "ɗ": "d",  # LATIN SMALL LETTER D WITH HOOK
    "ɡ": "g",  # LATIN SMALL LETTER SCRIPT G
    "ɩ": "i",  # LATIN SMALL LETTER IOTA
    "ɾ": "r",  # LATIN SMALL LETTER R WITH FISHHOOK
    "ʂ": "s",  # LATIN SMALL LETTER S WITH HOOK
    "ʋ": "u",  # LATIN SMALL LETTER V WITH HOOK
}


def lookup(char: str) -> str:
    """Return the Latin equivalent of *char*, or *char* itself when unmapped.

    Falls back to the mapping of the lower-case form, then to the ASCII base
    letter of an accented Latin letter (``é`` -> ``e``).
    """
    mapped = CONFUSABLES.get(char)
    if mapped is not None:
        return mapped

    lowered = char.lower()
    if lowered != char:
        mapped = CONFUSABLES.get(lowered)
        if mapped is not None:
            return mapped

    decomposed = unicodedata.normalize("NFD", char)
    base = decomposed[0]
    if (
        len(decomposed) > 1
        and base.isascii()
        and base.isalpha()
        and all(unicodedata.combining(mark) for mark in decomposed[1:])
    ):
        return base.lower()

    return char
