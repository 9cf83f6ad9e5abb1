"""Role behaviour: access matching, unread counters, notification targets."""

import random

from bson import ObjectId

from carebridge.services.parties import (
    AdminParty,
    CounterpartyRef,
    HomelessParty,
    NoAccessParty,
    counterparty_of,
    party_for,
)


def _org_chat():
    return {"_id": ObjectId(), "organization_id": ObjectId(), "merchant_id": None, "homeless_id": ObjectId()}


def _merchant_chat():
    return {"_id": ObjectId(), "organization_id": None, "merchant_id": ObjectId(), "homeless_id": ObjectId()}


class TestPartyFor:
    def test_known_roles(self):
        for role in ("organization", "merchant", "homeless", "admin"):
            assert party_for(role).role == role

    def test_donor_and_unknown_roles_cannot_chat(self):
        for role in ("donor", "volunteer", ""):
            party = party_for(role)
            assert isinstance(party, NoAccessParty)
            assert not party.can_chat
            assert not party.matches(_org_chat(), ObjectId())


class TestMatches:
    def test_organization_matches_only_its_own_profile(self):
        chat = _org_chat()
        party = party_for("organization")
        assert party.matches(chat, chat["organization_id"])
        assert party.matches(chat, str(chat["organization_id"]))
        assert not party.matches(chat, ObjectId())
        assert not party.matches(chat, None)

    def test_merchant_never_matches_organization_chat(self):
        chat = _org_chat()
        assert not party_for("merchant").matches(chat, chat["organization_id"])

    def test_homeless_matches_homeless_field(self):
        chat = _merchant_chat()
        assert party_for("homeless").matches(chat, chat["homeless_id"])
        assert not party_for("homeless").matches(chat, chat["merchant_id"])

    def test_admin_matches_everything(self):
        assert AdminParty().matches(_org_chat(), None)
        assert AdminParty().matches({}, None)


class TestCounters:
    def test_counterparty_sends_bump_homeless_counter(self):
        assert party_for("organization").outbound_counter(_org_chat()) == "unread_count_homeless"
        assert party_for("merchant").outbound_counter(_merchant_chat()) == "unread_count_homeless"

    def test_homeless_send_bumps_the_counterparty_side(self):
        assert HomelessParty().outbound_counter(_org_chat()) == "unread_count_organization"
        assert HomelessParty().outbound_counter(_merchant_chat()) == "unread_count_merchant"

    def test_admin_and_donor_sends_bump_nothing(self):
        assert party_for("admin").outbound_counter(_org_chat()) is None
        assert party_for("donor").outbound_counter(_org_chat()) is None

    def test_own_counter_per_role(self):
        assert party_for("organization").own_unread_counter == "unread_count_organization"
        assert party_for("merchant").own_unread_counter == "unread_count_merchant"
        assert party_for("homeless").own_unread_counter == "unread_count_homeless"
        # roles without a counter of their own fall back to the homeless counter
        assert party_for("admin").own_unread_counter == "unread_count_homeless"
        assert party_for("donor").own_unread_counter == "unread_count_homeless"


class TestRecipients:
    def test_homeless_notifies_counterparty(self):
        chat = _merchant_chat()
        assert party_for("homeless").recipient(chat) == ("merchant", chat["merchant_id"])

    def test_everyone_else_notifies_homeless(self):
        chat = _org_chat()
        for role in ("organization", "admin"):
            assert party_for(role).recipient(chat) == ("homeless", chat["homeless_id"])

    def test_sender_names(self):
        assert party_for("organization").sender_name({"org_name": "Harbor"}) == "Harbor"
        assert party_for("merchant").sender_name(None) == "Merchant"
        assert party_for("homeless").sender_name({"full_name": "Sam"}) == "Sam"
        assert party_for("admin").sender_name(None) == "Admin"


class TestCounterpartyRef:
    def test_exactly_one_side_is_resolved(self):
        rng = random.Random(7)
        for _ in range(50):
            kind = rng.choice(["organization", "merchant"])
            ref = CounterpartyRef(kind, ObjectId())
            chat = {"homeless_id": ObjectId(), "organization_id": None, "merchant_id": None, ref.field: ref.id}
            assert counterparty_of(chat) == ref
            assert sum(1 for f in ("organization_id", "merchant_id") if chat[f] is not None) == 1

    def test_unresolved(self):
        assert counterparty_of({"homeless_id": ObjectId()}) is None
