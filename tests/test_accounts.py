import pytest

from pairsignal.accounts import INVITE_ALPHABET, AccountLookup
from pairsignal.errors import (
    AlreadyLinked,
    CannotLinkSelf,
    InvalidInviteCode,
    NotFound,
    PartnerAlreadyLinked,
)


def test_register_issues_unique_identifiers(accounts):
    first = accounts.register(encrypted_profile={"ciphertext": "abc", "iv": "def"})
    second = accounts.register()

    assert first.id != second.id
    assert first.public_id != second.public_id
    assert len(first.public_id) == 32
    assert first.invite_code != second.invite_code
    assert len(first.invite_code) == 8
    assert set(first.invite_code) <= set(INVITE_ALPHABET)
    assert first.encrypted_profile == {"ciphertext": "abc", "iv": "def"}
    assert first.partner_id is None
    assert len(accounts) == 2


def test_lookups(accounts):
    account = accounts.register()
    assert accounts.find_by_public_id(account.public_id).id == account.id
    assert accounts.find_by_invite_code(account.invite_code.lower()).id == account.id
    assert accounts.find_by_public_id("unknown") is None
    assert accounts.get("unknown") is None


def test_link_is_symmetric(accounts, directory):
    alice = accounts.register()
    bob = accounts.register()

    partner = accounts.link(alice.id, bob.invite_code.lower())

    assert partner.id == bob.id
    assert directory.partner_of(alice.id) == bob.id
    assert directory.partner_of(bob.id) == alice.id


def test_link_rejects_unknown_code(accounts):
    alice = accounts.register()
    with pytest.raises(InvalidInviteCode):
        accounts.link(alice.id, "NOTACODE")


def test_link_rejects_self(accounts):
    alice = accounts.register()
    with pytest.raises(CannotLinkSelf):
        accounts.link(alice.id, alice.invite_code)


def test_link_never_overwrites_an_existing_pair(accounts, linked_pair):
    alice, bob = linked_pair
    carol = accounts.register()

    with pytest.raises(PartnerAlreadyLinked):
        accounts.link(carol.id, accounts.get(bob).invite_code)
    with pytest.raises(AlreadyLinked):
        accounts.link(alice, carol.invite_code)

    assert accounts.get_partner_id(alice) == bob
    assert accounts.get_partner_id(bob) == alice
    assert accounts.get_partner_id(carol.id) is None


def test_get_account_reports_push_subscription(accounts):
    account = accounts.register()
    assert accounts.get_account("ghost") == AccountLookup(exists=False)
    assert accounts.get_account(account.id) == AccountLookup(exists=True, push_subscription_present=False)

    accounts.set_push_subscription(account.id, {"endpoint": "https://push.example/abc", "keys": {}})
    assert accounts.get_account(account.id).push_subscription_present is True

    accounts.clear_push_subscription(account.id)
    assert accounts.get_account(account.id).push_subscription_present is False


def test_update_presence_is_validated(accounts):
    account = accounts.register()
    with pytest.raises(TypeError):
        accounts.update_presence(account.id, partner_id="someone")
    with pytest.raises(NotFound):
        accounts.update_presence("ghost", is_online=True)


def test_returned_accounts_are_snapshots(accounts):
    account = accounts.register()
    account.presence.is_online = True
    account.partner_id = "tampered"

    stored = accounts.get(account.id)
    assert stored.presence.is_online is False
    assert stored.partner_id is None
