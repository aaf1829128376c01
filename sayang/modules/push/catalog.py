"""Message content: the daily schedule, the filler pool and welcome notes.

Scheduled hours are written in local time (WITA by default) and translated
to UTC once at startup by ``schedule.build_schedule_table``.
"""

from __future__ import annotations

_MEAL_REMINDER = (
    "JANGAN LUPAA MAMM YAK CINTAKUW SAYANGG, BIAR TIDAA KOSONG PEYUTNYAAAAA, "
    "SEMANGAT SAYANGGG, CAMAT MAM SAYANGG DAN KENYANGIN CINTAAAAAA DAN JANGAN "
    "LUPA MINUM VITAMIN CINTAAA"
)

SCHEDULED_LOCAL: dict[int, str] = {
    7: (
        "MORNING SAYANGKUW CINTAKUWWW, SEMOGAA HARI INII SAYANGG BISAKK BAHAGIA "
        "DAN SENENGGG DAN MOOD SAYANGG TERJAGAA, JANGAN LUPAA MINUM AIR PUTIH "
        "DULU YAKKK💘💘💘💘"
    ),
    10: _MEAL_REMINDER,
    13: _MEAL_REMINDER,
    16: _MEAL_REMINDER,
    20: (
        "JANGAN LUPAA MAM YAK SAYANGG KALO SAYANG MASI LAPERR CINTAAAAAA, "
        "I LOVVVVVV UUUUU MOREEEE SAYANGGGG"
    ),
    22: "BOBONYA JANGAN TERLALU MALAM YAKK CANTIKKKKKK, SAYANGG JAGA KESEHATANNNNN YAKKKKK",
    23: (
        "CAMAT BOBO SAYANGGG, JANGAN LUPAA BACAA DOAA SAYANGG, MIMPII INDAHH DANN "
        "BOBO YANG NYENYAK SAYANGGG, GUDNAIT SAYANGGG, I LOVVVVVV UUUUU MOREEEE "
        "SAYANGGGG CANTIKKK UCUKKK GEMESHH BAHENOL SEXYYY, BABAYY SAYANGGGGG"
    ),
}

FILLER_MESSAGES: tuple[str, ...] = (
    "SAYANGG CANTIK BANGETTTT AAAAAAAA",
    "SAYANGGKUUU GEMESH BANGETTT",
    "SAYANGKUWW CINTAKUWWW UCUK BANGETTTT",
    "SAYANG ADAA YANG DIPIKIRIN TIDAAA, LET ME KNOW YAK CINTAAAA",
    "CHAT ME ANYTIME SAYANGGGGG",
    "I LOVVVVVV UUUUU MOREEEE SAYANGGGG CANTIKKK UCUKKK GEMESHH BAHENOL SEXYYY",
    "I LOVVVVV UUU THE MOST SAYANGGGGG CANTIKKKK",
    "💞💘💞💓💞💓💞💓💘💓💞💓💘💓💓💞💞💓💞",
    "SAYANGGG SEMANGAT HARI INIIII, AKU BAKAL TERUS ADA BUAT SAYANGG GIMANA PUN KONDISINYAAA",
    "SAYANGG JANGAN LUPA TERSENYUM OKEYYYY, AKU SUKAKK NGELIAT SENYUM SAYANGGGG",
    "SAYANGGGG MAW DUNG PAPNYAA AKU KANGENNNN SAYANGGGGG",
)

_WELCOME = (
    "MAKACII SAYANGKUU CINTAKUWWW UDAAA IZININ AKUU BUATT NGIRIM PESAN PESAN "
    "INI UNTUK NEMENIN SAYANG SETIAP HARI"
)

WELCOME_MESSAGES: tuple[str, ...] = (
    f"{_WELCOME} 💌💕💖💗💓💞",
    f"{_WELCOME} 💘❤️💑💏💝",
    f"{_WELCOME} ❣️💕💖✨🌹",
    f"{_WELCOME} 💗💓💞💕",
)
