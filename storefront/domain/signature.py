import hashlib
import hmac
from typing import Mapping
from urllib.parse import quote_plus

# Порядок полей, который требует PayFast при инициации платежа
PAYFAST_FIELD_ORDER = (
    "merchant_id",
    "merchant_key",
    "return_url",
    "cancel_url",
    "notify_url",
    "name_first",
    "name_last",
    "email_address",
    "cell_number",
    "m_payment_id",
    "amount",
    "item_name",
    "item_description",
)

SIGNATURE_FIELD = "signature"


class PaymentSignatureCodec:
    """Подпись PayFast: MD5 от url-encoded строки параметров.

    MD5 задан протоколом шлюза, заменять алгоритм нельзя.
    """

    def __init__(self, passphrase: str = ""):
        self._passphrase = (passphrase or "").strip()

    def canonical_string(self, fields: Mapping[str, str]) -> str:
        parts = []
        for key, value in fields.items():
            if key == SIGNATURE_FIELD or value is None:
                continue
            value = str(value)
            if value == "":
                continue
            parts.append(f"{key}={quote_plus(value.strip())}")
        payload = "&".join(parts)
        if self._passphrase:
            payload += f"&passphrase={quote_plus(self._passphrase)}"
        return payload

    def sign(self, fields: Mapping[str, str]) -> str:
        return hashlib.md5(self.canonical_string(fields).encode()).hexdigest()

    def verify(self, fields: Mapping[str, str], provided_signature: str) -> bool:
        if not provided_signature:
            return False
        expected = self.sign(fields)
        return hmac.compare_digest(expected, provided_signature.strip().lower())


def ordered_fields(fields: Mapping[str, str]) -> dict[str, str]:
    """Раскладывает поля в порядке PayFast, неизвестные поля идут в конце"""
    ordered = {key: fields[key] for key in PAYFAST_FIELD_ORDER if key in fields}
    for key, value in fields.items():
        if key not in ordered:
            ordered[key] = value
    return ordered
