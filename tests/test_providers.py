"""
Tests for blob providers.

Tests cover:
- Provider registry
- LocalDirectoryProvider versioning, download and integrity checks
- Uploading a real vault file and loading the downloaded copy
"""
import pytest

from safekey.providers import (
    BlobNotFoundError,
    BlobProvider,
    ChecksumMismatchError,
    LocalDirectoryProvider,
    ProviderError,
    ProviderNotFoundError,
    available_providers,
    checksum,
    get_provider,
    register_provider,
)
from safekey.vault import Vault


@pytest.fixture
def provider(tmp_path, clock):
    return LocalDirectoryProvider(tmp_path / "blobs", clock=clock)


# --- Registry ---

class TestRegistry:

    def test_local_registered(self):
        assert "local" in available_providers()

    def test_get_provider(self, tmp_path):
        provider = get_provider("local", root=tmp_path)
        assert isinstance(provider, LocalDirectoryProvider)
        assert isinstance(provider, BlobProvider)

    def test_unknown_provider(self):
        with pytest.raises(ProviderNotFoundError) as err:
            get_provider("s3")
        assert "local" in str(err.value)
        assert isinstance(err.value, KeyError)

    def test_duplicate_name(self):
        with pytest.raises(ValueError):
            @register_provider("local")
            class Other:
                pass


# --- Local Directory ---

class TestLocalDirectoryProvider:
    """Tests for the local directory backend."""

    def test_upload_download(self, provider):
        version_id = provider.upload("work", b"blob-1", description="first")
        data, meta = provider.download("work")
        assert data == b"blob-1"
        assert meta.version_id == version_id
        assert meta.checksum == checksum(b"blob-1")
        assert meta.size == 6
        assert meta.description == "first"
        assert meta.version_count == 1

    def test_versions_oldest_first(self, provider, clock):
        first = provider.upload("work", b"one")
        clock.tick()
        second = provider.upload("work", b"two")
        assert [v.id for v in provider.list_versions("work")] == [first, second]
        assert provider.get_metadata("work").version_id == second
        assert provider.get_metadata("work").version_count == 2

    def test_download_specific_version(self, provider, clock):
        first = provider.upload("work", b"one")
        clock.tick()
        provider.upload("work", b"two")
        data, meta = provider.download("work", first)
        assert data == b"one"
        assert meta.version_id == first
        assert meta.version_count == 1

    def test_same_bytes_same_instant(self, provider):
        first = provider.upload("work", b"same")
        second = provider.upload("work", b"same")
        assert first != second
        assert len(provider.list_versions("work")) == 2

    def test_unknown_vault(self, provider):
        assert not provider.exists("nope")
        with pytest.raises(BlobNotFoundError):
            provider.download("nope")
        with pytest.raises(BlobNotFoundError):
            provider.get_metadata("nope")
        with pytest.raises(BlobNotFoundError):
            provider.delete("nope")

    def test_empty_index(self, provider):
        provider.upload("work", b"one")
        (provider.root / "work" / "index.json").write_bytes(b"[]")
        with pytest.raises(BlobNotFoundError):
            provider.download("work")
        with pytest.raises(BlobNotFoundError):
            provider.get_metadata("work")
        assert provider.upload("work", b"two")
        assert provider.download("work")[0] == b"two"

    def test_unknown_version(self, provider):
        provider.upload("work", b"one")
        with pytest.raises(BlobNotFoundError) as err:
            provider.download("work", "19990101T000000000000-abc")
        assert err.value.version_id == "19990101T000000000000-abc"

    def test_checksum_mismatch(self, provider):
        version_id = provider.upload("work", b"original")
        (provider.root / "work" / f"{version_id}.vault").write_bytes(b"altered")
        with pytest.raises(ChecksumMismatchError):
            provider.download("work")

    def test_delete(self, provider):
        provider.upload("work", b"one")
        assert provider.exists("work")
        provider.delete("work")
        assert not provider.exists("work")

    @pytest.mark.parametrize("vault_id", ["", "../escape", "a/b", ".hidden"])
    def test_invalid_vault_id(self, provider, vault_id):
        with pytest.raises(ProviderError):
            provider.upload(vault_id, b"x")

    def test_vault_file_roundtrip(self, vault, vault_path, provider, password,
                                  config, clock, tmp_path):
        """A downloaded backup opens like the original vault file."""
        vault.add_secret("API_KEY", "abc")
        provider.upload("work", vault_path.read_bytes())
        data, _ = provider.download("work")
        restored = tmp_path / "restored.json"
        restored.write_bytes(data)
        with Vault.load(restored, password, config=config, clock=clock) as copy:
            assert copy.get_secret("API_KEY").value == "abc"
