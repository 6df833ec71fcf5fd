"""Tests for OAuth connection persistence."""

import json
from datetime import timedelta

import pytest

from dashsync.auth.models import OAuthConnection, OAuthProvider, OAuthTokens, OAuthUser
from dashsync.auth.token_store import TokenStore
from dashsync.exceptions import NoConnectionError


class TestConnectionPersistence:
    """Saving, loading and removing connections."""

    def test_empty_store_has_no_connections(self, token_store):
        assert token_store.get_all_connections() == []
        assert token_store.get_connection(OAuthProvider.GOOGLE) is None

    def test_save_and_reload(self, token_store, google_connection):
        google_connection.user = OAuthUser(id="42", email="ada@example.com", name="Ada")
        token_store.save_connection(google_connection)

        loaded = token_store.get_connection(OAuthProvider.GOOGLE)
        assert loaded == google_connection

    def test_save_replaces_existing_provider_entry(self, token_store, google_connection):
        token_store.save_connection(google_connection)
        replacement = OAuthConnection(
            provider=OAuthProvider.GOOGLE,
            tokens=OAuthTokens(access_token="access-2"),
        )
        token_store.save_connection(replacement)

        connections = token_store.get_all_connections()
        assert len(connections) == 1
        assert connections[0].tokens.access_token == "access-2"

    def test_connections_for_different_providers_coexist(self, token_store, google_connection):
        token_store.save_connection(google_connection)
        token_store.save_connection(OAuthConnection(
            provider=OAuthProvider.NOTION,
            tokens=OAuthTokens(access_token="notion-token"),
        ))

        providers = {c.provider for c in token_store.get_all_connections()}
        assert providers == {OAuthProvider.GOOGLE, OAuthProvider.NOTION}

    def test_remove_is_idempotent(self, token_store, google_connection):
        token_store.save_connection(google_connection)
        token_store.remove_connection(OAuthProvider.GOOGLE)
        token_store.remove_connection(OAuthProvider.GOOGLE)

        assert token_store.get_connection(OAuthProvider.GOOGLE) is None

    def test_corrupt_payload_reads_as_empty(self, kv_store, token_store):
        kv_store.set(TokenStore.STORAGE_KEY, "{not json")
        assert token_store.get_all_connections() == []

    def test_non_list_payload_reads_as_empty(self, kv_store, token_store):
        kv_store.set(TokenStore.STORAGE_KEY, json.dumps({"provider": "google"}))
        assert token_store.get_all_connections() == []

    def test_unreadable_entries_are_skipped(self, kv_store, token_store, google_connection):
        kv_store.set(TokenStore.STORAGE_KEY, json.dumps([
            {"provider": "myspace", "tokens": {"access_token": "x"}},
            google_connection.to_dict(),
        ]))

        connections = token_store.get_all_connections()
        assert [c.provider for c in connections] == [OAuthProvider.GOOGLE]


class TestTokenExpiry:
    """Expiry checks apply a five minute safety margin."""

    def test_token_valid_well_before_expiry(self, token_store, google_connection, clock):
        assert not token_store.is_token_expired(google_connection)

    def test_token_expired_inside_margin(self, token_store, google_connection, clock):
        google_connection.tokens.expires_at = clock() + timedelta(minutes=4)
        assert token_store.is_token_expired(google_connection)

    def test_margin_boundary_counts_as_expired(self, token_store, google_connection, clock):
        google_connection.tokens.expires_at = clock() + timedelta(minutes=5)
        assert token_store.is_token_expired(google_connection)

    def test_explicit_now_overrides_clock(self, token_store, google_connection, clock):
        later = clock() + timedelta(hours=2)
        assert token_store.is_token_expired(google_connection, now=later)

    def test_token_without_expiry_never_expires(self, token_store, clock):
        connection = OAuthConnection(
            provider=OAuthProvider.NOTION,
            tokens=OAuthTokens(access_token="notion-token"),
        )
        assert not token_store.is_token_expired(connection, now=clock() + timedelta(days=3650))


class TestTokenUpdates:
    """Merging refreshed tokens into stored connections."""

    def test_update_merges_fields(self, token_store, google_connection, clock):
        token_store.save_connection(google_connection)
        new_expiry = clock() + timedelta(hours=2)

        updated = token_store.update_tokens(
            OAuthProvider.GOOGLE,
            OAuthTokens(access_token="access-2", expires_at=new_expiry),
        )

        assert updated.tokens.access_token == "access-2"
        assert updated.tokens.refresh_token == "refresh-1"
        assert updated.tokens.expires_at == new_expiry
        assert token_store.get_connection(OAuthProvider.GOOGLE).tokens.access_token == "access-2"

    def test_update_keeps_user_and_connected_at(self, token_store, google_connection):
        google_connection.user = OAuthUser(id="42", email="ada@example.com")
        token_store.save_connection(google_connection)

        updated = token_store.update_tokens(OAuthProvider.GOOGLE, OAuthTokens(access_token="access-2"))

        assert updated.user == google_connection.user
        assert updated.connected_at == google_connection.connected_at
        assert updated.last_sync_at is None

    def test_refresh_between_syncs_keeps_last_sync(self, token_store, google_connection, clock):
        token_store.save_connection(google_connection)
        token_store.touch_last_sync(OAuthProvider.GOOGLE)
        synced_at = clock()
        clock.advance(minutes=10)

        updated = token_store.update_tokens(OAuthProvider.GOOGLE, OAuthTokens(access_token="new"))

        assert updated.tokens.access_token == "new"
        assert updated.last_sync_at == synced_at
        assert token_store.get_connection(OAuthProvider.GOOGLE).last_sync_at == synced_at

    def test_update_without_connection_raises(self, token_store):
        with pytest.raises(NoConnectionError):
            token_store.update_tokens(OAuthProvider.GOOGLE, OAuthTokens(access_token="x"))

    def test_touch_last_sync_records_clock(self, token_store, google_connection, clock):
        token_store.save_connection(google_connection)
        token_store.touch_last_sync(OAuthProvider.GOOGLE)

        assert token_store.get_connection(OAuthProvider.GOOGLE).last_sync_at == clock()

    def test_touch_last_sync_without_connection_is_noop(self, token_store):
        token_store.touch_last_sync(OAuthProvider.GOOGLE)
        assert token_store.get_all_connections() == []
