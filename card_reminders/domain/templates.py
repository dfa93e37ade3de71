"""Per-language reminder templates as plain data"""

from dataclasses import dataclass
from typing import Callable, Dict, Tuple
from card_reminders.utils.currency import format_amount

# (title, body)
Text = Tuple[str, str]


@dataclass(frozen=True)
class LocaleTemplates:
    """
    Four pure formatting functions for one language.

    billing(card_name, last4, day_offset)
    due(card_name, last4, days_until, amount, auto_debit)
    overdue(card_name, last4, days_overdue, amount, auto_debit)
    partial(card_name, last4, paid, remaining)

    Amounts arrive already formatted for the user's currency.
    """

    locale: str
    card_fallback: str
    billing: Callable[[str, str, int], Text]
    due: Callable[[str, str, int, str, bool], Text]
    overdue: Callable[[str, str, int, str, bool], Text]
    partial: Callable[[str, str, str, str], Text]

    def money(self, amount: float | None, currency: str | None) -> str:
        return format_amount(amount, currency, self.locale)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


# --- English ---

_EN_AUTO_DEBIT = " Auto-debit is enabled for this card, please keep enough balance in the linked account."


def _en_billing(card_name: str, last4: str, offset: int) -> Text:
    if offset < 0:
        return (
            f"📝 Statement Generated: {card_name}",
            f"Your statement for {card_name} (**** {last4}) was generated {_plural(-offset, 'day')} ago. "
            "Please log your new payment details.",
        )
    if offset == 0:
        return (
            f"📅 Billing Day Today: {card_name}",
            f"Your new statement for {card_name} (**** {last4}) will be generated soon.",
        )
    if offset == 1:
        return (
            f"📅 Billing Day Tomorrow: {card_name}",
            f"Your billing date for {card_name} (**** {last4}) is tomorrow. Finalize your expenses.",
        )
    return (
        f"📅 Billing in {offset} Days: {card_name}",
        f"The billing date for {card_name} (**** {last4}) is approaching in {offset} days.",
    )


def _en_due(card_name: str, last4: str, days: int, amount: str, auto_debit: bool) -> Text:
    if days == 0:
        title = f"⏰ Payment Due Today: {card_name}"
    elif days == 1:
        title = f"⏰ Payment Due Tomorrow: {card_name}"
    else:
        title = f"⏰ {days} Days Left to Pay: {card_name}"
    body = f"Please pay {amount} for your card ending in {last4} to avoid late fees."
    if auto_debit:
        body += _EN_AUTO_DEBIT
    return title, body


def _en_overdue(card_name: str, last4: str, days: int, amount: str, auto_debit: bool) -> Text:
    body = (
        f"Your payment of {amount} for {card_name} (**** {last4}) is overdue by {_plural(days, 'day')}. "
        "Please pay now to avoid further charges."
    )
    if auto_debit:
        body += _EN_AUTO_DEBIT
    return f"⚠️ Overdue Payment: {card_name}", body


def _en_partial(card_name: str, last4: str, paid: str, remaining: str) -> Text:
    return (
        f"💸 Partial Payment Received: {card_name}",
        f"Thank you for paying {paid}. A balance of {remaining} is still due for {card_name} (**** {last4}).",
    )


EN = LocaleTemplates(
    locale="en",
    card_fallback="your card",
    billing=_en_billing,
    due=_en_due,
    overdue=_en_overdue,
    partial=_en_partial,
)


# --- Hindi ---

_HI_AUTO_DEBIT = " इस कार्ड के लिए ऑटो-डेबिट सक्षम है, कृपया लिंक किए गए खाते में पर्याप्त शेष राशि रखें।"


def _hi_billing(card_name: str, last4: str, offset: int) -> Text:
    if offset < 0:
        return (
            f"📝 स्टेटमेंट जेनरेट हो गया: {card_name}",
            f"आपके {card_name} (**** {last4}) का स्टेटमेंट {-offset} दिन पहले जेनरेट हुआ था। "
            "कृपया अपना नया भुगतान लॉग करें।",
        )
    if offset == 0:
        return (
            f"📅 आज बिलिंग दिवस: {card_name}",
            f"आपके {card_name} (**** {last4}) का नया स्टेटमेंट जल्द ही जेनरेट होगा।",
        )
    if offset == 1:
        return (
            f"📅 कल बिलिंग दिवस: {card_name}",
            f"{card_name} (**** {last4}) की बिलिंग तिथि कल है। अपने खर्चों को अंतिम रूप दें।",
        )
    return (
        f"📅 {offset} दिनों में बिलिंग: {card_name}",
        f"{card_name} (**** {last4}) की बिलिंग तिथि {offset} दिनों में आ रही है।",
    )


def _hi_due(card_name: str, last4: str, days: int, amount: str, auto_debit: bool) -> Text:
    if days == 0:
        title = f"⏰ आज भुगतान की अंतिम तिथि: {card_name}"
    elif days == 1:
        title = f"⏰ कल भुगतान की अंतिम तिथि: {card_name}"
    else:
        title = f"⏰ भुगतान के लिए {days} दिन शेष: {card_name}"
    body = f"कृपया लेट फीस से बचने के लिए अपने कार्ड (**** {last4}) का {amount} का भुगतान करें।"
    if auto_debit:
        body += _HI_AUTO_DEBIT
    return title, body


def _hi_overdue(card_name: str, last4: str, days: int, amount: str, auto_debit: bool) -> Text:
    body = (
        f"आपके {card_name} (**** {last4}) का {amount} का भुगतान {days} दिन से बकाया है। "
        "कृपया अतिरिक्त शुल्क से बचने के लिए अभी भुगतान करें।"
    )
    if auto_debit:
        body += _HI_AUTO_DEBIT
    return f"⚠️ भुगतान बकाया: {card_name}", body


def _hi_partial(card_name: str, last4: str, paid: str, remaining: str) -> Text:
    return (
        f"💸 आंशिक भुगतान प्राप्त: {card_name}",
        f"{paid} के भुगतान के लिए धन्यवाद। आपके {card_name} (**** {last4}) पर अभी भी {remaining} बकाया है।",
    )


HI = LocaleTemplates(
    locale="hi",
    card_fallback="आपका कार्ड",
    billing=_hi_billing,
    due=_hi_due,
    overdue=_hi_overdue,
    partial=_hi_partial,
)


TEMPLATES: Dict[str, LocaleTemplates] = {"en": EN, "hi": HI}

LANGUAGE_ALIASES: Dict[str, str] = {
    "en": "en",
    "english": "en",
    "hi": "hi",
    "hindi": "hi",
}

DEFAULT_LANGUAGE = "en"


def templates_for(language: str | None) -> LocaleTemplates:
    """Template record for a language tag or name; unknown values fall back to English"""
    key = (language or "").strip().lower().replace("_", "-")
    tag = LANGUAGE_ALIASES.get(key) or LANGUAGE_ALIASES.get(key.split("-")[0], DEFAULT_LANGUAGE)
    return TEMPLATES[tag]
