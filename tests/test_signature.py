"""Tests for the PayFast signature codec."""

import hashlib

from storefront.domain.signature import PaymentSignatureCodec, ordered_fields, PAYFAST_FIELD_ORDER

FIELDS = {
    "merchant_id": "10000100",
    "merchant_key": "46f0cd694581a",
    "m_payment_id": "order-1",
    "amount": "621.00",
    "item_name": "Order #order-1",
}


class TestCanonicalString:
    def test_fields_joined_in_given_order(self):
        codec = PaymentSignatureCodec()
        assert codec.canonical_string(FIELDS) == (
            "merchant_id=10000100&merchant_key=46f0cd694581a&m_payment_id=order-1"
            "&amount=621.00&item_name=Order+%23order-1"
        )

    def test_empty_values_skipped_and_values_trimmed(self):
        codec = PaymentSignatureCodec()
        fields = {"merchant_id": " 10000100 ", "name_first": "", "item_name": "Red kettle"}
        assert codec.canonical_string(fields) == "merchant_id=10000100&item_name=Red+kettle"

    def test_passphrase_appended_url_encoded(self):
        codec = PaymentSignatureCodec(passphrase=" jt7NOE43FZPn secret ")
        assert codec.canonical_string({"amount": "10.00"}) == "amount=10.00&passphrase=jt7NOE43FZPn+secret"

    def test_signature_field_ignored(self):
        codec = PaymentSignatureCodec()
        with_signature = dict(FIELDS, signature="abc")
        assert codec.canonical_string(with_signature) == codec.canonical_string(FIELDS)

    def test_url_special_characters_encoded(self):
        codec = PaymentSignatureCodec()
        fields = {"return_url": "https://shop.example/order/1?status=success"}
        assert codec.canonical_string(fields) == (
            "return_url=https%3A%2F%2Fshop.example%2Forder%2F1%3Fstatus%3Dsuccess"
        )


class TestSignAndVerify:
    def test_sign_is_md5_hex_of_canonical_string(self):
        codec = PaymentSignatureCodec(passphrase="salt")
        expected = hashlib.md5(codec.canonical_string(FIELDS).encode()).hexdigest()
        assert codec.sign(FIELDS) == expected
        assert len(codec.sign(FIELDS)) == 32

    def test_verify_accepts_matching_signature(self):
        codec = PaymentSignatureCodec(passphrase="salt")
        assert codec.verify(FIELDS, codec.sign(FIELDS)) is True

    def test_verify_rejects_tampered_amount(self):
        codec = PaymentSignatureCodec(passphrase="salt")
        signature = codec.sign(FIELDS)
        tampered = dict(FIELDS, amount="1.00")
        assert codec.verify(tampered, signature) is False

    def test_verify_rejects_wrong_passphrase(self):
        signature = PaymentSignatureCodec(passphrase="salt").sign(FIELDS)
        assert PaymentSignatureCodec(passphrase="other").verify(FIELDS, signature) is False

    def test_verify_rejects_missing_signature(self):
        assert PaymentSignatureCodec().verify(FIELDS, "") is False

    def test_field_order_matters(self):
        codec = PaymentSignatureCodec()
        reordered = dict(reversed(list(FIELDS.items())))
        assert codec.sign(reordered) != codec.sign(FIELDS)


def test_ordered_fields_follow_gateway_order():
    shuffled = {"item_name": "x", "amount": "1.00", "custom_str1": "y", "merchant_id": "1"}
    ordered = ordered_fields(shuffled)
    assert list(ordered) == ["merchant_id", "amount", "item_name", "custom_str1"]
    assert list(ordered)[:3] == [k for k in PAYFAST_FIELD_ORDER if k in shuffled]
