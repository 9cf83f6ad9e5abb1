"""Get-or-create: counterparty resolution, validation and the one-counterparty invariant."""

import random

import pytest
from bson import ObjectId

from carebridge.services.errors import AccessDenied, ChatNotInitialized, NotFound, ValidationError

from conftest import add_party


async def test_first_call_creates_empty_conversation(service, directory):
    chat = await service.get_or_create(directory.org.principal, str(directory.org.profile_id), str(directory.homeless.profile_id))

    assert chat["organization_id"] == directory.org.profile_id
    assert chat["merchant_id"] is None
    assert chat["homeless_id"] == directory.homeless.profile_id
    assert chat["messages"] == []
    assert chat["last_message"] is None
    assert chat["unread_count_organization"] == 0
    assert chat["unread_count_merchant"] == 0
    assert chat["unread_count_homeless"] == 0
    assert chat["is_deleted"] is False


async def test_second_call_returns_same_conversation_with_history(service, directory, org_chat):
    await service.send_message(directory.org.principal, str(org_chat["_id"]), "Hello")

    again = await service.get_or_create(directory.homeless.principal, str(directory.org.profile_id), str(directory.homeless.profile_id))

    assert again["_id"] == org_chat["_id"]
    assert [m["text"] for m in again["messages"]] == ["Hello"]


async def test_counterparty_id_resolves_as_merchant(service, directory):
    chat = await service.get_or_create(directory.homeless.principal, str(directory.merchant.profile_id), str(directory.homeless.profile_id))

    assert chat["merchant_id"] == directory.merchant.profile_id
    assert chat["organization_id"] is None


async def test_explicit_merchant_route_rejects_organization_id(service, directory):
    with pytest.raises(NotFound, match="Merchant not found"):
        await service.get_or_create(directory.admin.principal, str(directory.org.profile_id), str(directory.homeless.profile_id), explicit_kind="merchant")


async def test_unknown_counterparty(service, directory):
    with pytest.raises(NotFound, match="Organization or Merchant not found"):
        await service.get_or_create(directory.admin.principal, str(ObjectId()), str(directory.homeless.profile_id))


async def test_soft_deleted_counterparty_is_not_found(service, directory):
    with pytest.raises(NotFound):
        await service.get_or_create(directory.admin.principal, str(directory.deleted_org.profile_id), str(directory.homeless.profile_id))


async def test_soft_deleted_homeless_is_not_found(service, directory):
    with pytest.raises(NotFound, match="Homeless user not found"):
        await service.get_or_create(directory.admin.principal, str(directory.org.profile_id), str(directory.deleted_homeless.profile_id))


@pytest.mark.parametrize("counterparty, homeless", [("not-an-id", None), (None, "user2")])
async def test_malformed_ids(service, directory, counterparty, homeless):
    counterparty = counterparty or str(directory.org.profile_id)
    homeless = homeless or str(directory.homeless.profile_id)
    with pytest.raises(ValidationError):
        await service.get_or_create(directory.admin.principal, counterparty, homeless)


async def test_placeholder_id_is_distinct_from_malformed(service, directory):
    with pytest.raises(ChatNotInitialized) as exc:
        await service.authorize(directory.org.principal, "mock_chat_123")
    assert exc.value.code == "CHAT_NOT_CREATED"

    with pytest.raises(ValidationError):
        await service.authorize(directory.org.principal, "garbage")


async def test_unknown_conversation(service, directory):
    with pytest.raises(NotFound, match="Chat not found"):
        await service.authorize(directory.admin.principal, str(ObjectId()))


async def test_soft_deleted_conversation_is_hidden(service, db, directory, org_chat):
    await db["conversations"].update_one({"_id": org_chat["_id"]}, {"$set": {"is_deleted": True}})

    with pytest.raises(NotFound):
        await service.get_messages(directory.org.principal, str(org_chat["_id"]))

    # a fresh conversation replaces the deleted one
    fresh = await service.get_or_create(directory.org.principal, str(directory.org.profile_id), str(directory.homeless.profile_id))
    assert fresh["_id"] != org_chat["_id"]


async def test_outsiders_cannot_create_other_parties_conversations(service, directory):
    for outsider in (directory.other_org, directory.other_homeless, directory.donor, directory.merchant):
        with pytest.raises(AccessDenied):
            await service.get_or_create(outsider.principal, str(directory.org.profile_id), str(directory.homeless.profile_id))


async def test_id_present_in_both_collections_resolves_as_organization(service, db, directory):
    shared = ObjectId()
    org_owner = await add_party(db, "organization", {"_id": shared, "org_name": "Twin"})
    await add_party(db, "merchant", {"_id": shared, "business_name": "Twin Shop"})

    chat = await service.get_or_create(org_owner.principal, str(shared), str(directory.homeless.profile_id))

    assert chat["organization_id"] == shared
    assert chat["merchant_id"] is None


async def test_every_created_conversation_has_exactly_one_counterparty(service, db, directory):
    rng = random.Random(42)
    counterparties = [directory.org, directory.merchant, directory.other_org]
    homeless = [directory.homeless, directory.other_homeless]
    for _ in range(12):
        cp = rng.choice(counterparties)
        hl = rng.choice(homeless)
        await service.get_or_create(directory.admin.principal, str(cp.profile_id), str(hl.profile_id))

    docs = await db["conversations"].find({}).to_list(length=100)
    assert docs
    for doc in docs:
        assert (doc.get("organization_id") is None) != (doc.get("merchant_id") is None)
        assert doc["homeless_id"] is not None
    # get-or-create never duplicates a pair
    pairs = {(doc.get("organization_id") or doc.get("merchant_id"), doc["homeless_id"]) for doc in docs}
    assert len(pairs) == len(docs)
