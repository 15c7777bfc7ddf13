"""凭证与 Redis 凭证缓存的测试。"""

import json
import pathlib
import sys
import unittest
from unittest.mock import MagicMock

import redis

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autocheckin.exceptions import AuthenticationError, CacheError, ValidationError  # noqa: E402
from autocheckin.logger_setup import LoggerInterface  # noqa: E402
from autocheckin.storage.credential_store import Credential, RedisCredentialStore  # noqa: E402


class _FakeRedis:
    """内存中的 Redis 替身，只实现凭证缓存用到的命令"""

    def __init__(self) -> None:
        self.data = {}
        self.ttls = {}

    def get(self, key):
        return self.data.get(key)

    def set(self, key, value, ex=None):
        self.data[key] = value
        self.ttls[key] = ex
        return True

    def delete(self, key):
        return 1 if self.data.pop(key, None) is not None else 0

    def ping(self):
        return True


class TestCredential(unittest.TestCase):
    def test_valid_only_before_expiry(self) -> None:
        credential = Credential("Bearer abc", 2_000)
        self.assertTrue(credential.is_valid(now=1_000))
        self.assertFalse(credential.is_valid(now=2_000))
        self.assertFalse(credential.is_valid(now=3_000))

    def test_missing_parts_are_invalid(self) -> None:
        self.assertFalse(Credential(None, 2_000).is_valid(now=1_000))
        self.assertFalse(Credential("Bearer abc", None).is_valid(now=1_000))
        self.assertFalse(Credential().is_valid())

    def test_expiry_window(self) -> None:
        credential = Credential("Bearer abc", 10_000)
        self.assertEqual(credential.time_until_expiry(now=4_000), 6_000)
        self.assertTrue(credential.will_expire_within(6_000, now=4_000))
        self.assertFalse(credential.will_expire_within(5_999, now=4_000))
        self.assertIsNone(Credential("Bearer abc").will_expire_within(1_000))

    def test_require_token(self) -> None:
        self.assertEqual(Credential("Bearer abc", 1).require_token(), "Bearer abc")
        with self.assertRaises(AuthenticationError):
            Credential().require_token()

    def test_from_dict_rejects_wrong_types(self) -> None:
        with self.assertRaises(ValueError):
            Credential.from_dict({"token": "Bearer abc", "expire": "soon"})
        with self.assertRaises(ValueError):
            Credential.from_dict({"token": 42, "expire": 1})


class TestRedisCredentialStore(unittest.TestCase):
    def setUp(self) -> None:
        self.logger = MagicMock(spec=LoggerInterface)
        self.client = _FakeRedis()
        self.store = RedisCredentialStore(self.logger, client=self.client, default_ttl=3600)

    def test_save_then_load_returns_same_credential(self) -> None:
        credential = Credential("Bearer abc", 1_900_000_000_000)
        self.store.save(credential)

        self.assertEqual(self.store.load(), credential)
        self.assertEqual(self.client.ttls["token_info"], 3600)
        self.assertEqual(
            json.loads(self.client.data["token_info"]),
            {"token": "Bearer abc", "expire": 1_900_000_000_000},
        )

    def test_save_uses_explicit_ttl(self) -> None:
        self.store.save(Credential("Bearer abc", 1_900_000_000_000), ttl_seconds=60)
        self.assertEqual(self.client.ttls["token_info"], 60)

    def test_empty_cache_returns_empty_credential(self) -> None:
        credential = self.store.load()
        self.assertIsNone(credential.token)
        self.assertFalse(credential.is_valid())

    def test_corrupt_entry_is_deleted(self) -> None:
        self.client.data["token_info"] = "{not json"

        credential = self.store.load()

        self.assertFalse(credential.is_valid())
        self.assertNotIn("token_info", self.client.data)

    def test_non_object_entry_is_deleted(self) -> None:
        self.client.data["token_info"] = json.dumps(["Bearer abc", 1])
        self.assertFalse(self.store.load().is_valid())
        self.assertNotIn("token_info", self.client.data)

    def test_save_rejects_incomplete_credential(self) -> None:
        with self.assertRaises(ValidationError):
            self.store.save(Credential("Bearer abc", None))
        self.assertEqual(self.client.data, {})

    def test_redis_failure_becomes_cache_error(self) -> None:
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("down")
        client.set.side_effect = redis.ConnectionError("down")
        store = RedisCredentialStore(self.logger, client=client)

        with self.assertRaises(CacheError):
            store.load()
        with self.assertRaises(CacheError):
            store.save(Credential("Bearer abc", 1_900_000_000_000))

    def test_clear_and_ping(self) -> None:
        self.store.save(Credential("Bearer abc", 1_900_000_000_000))
        self.store.clear()
        self.assertFalse(self.store.load().is_valid())
        self.assertTrue(self.store.ping())

        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError("down")
        self.assertFalse(RedisCredentialStore(self.logger, client=client).ping())

    def test_repr_hides_token(self) -> None:
        self.assertNotIn("secret-token-value", repr(Credential("Bearer secret-token-value", 1)))

    def test_requires_url_or_client(self) -> None:
        with self.assertRaises(ValueError):
            RedisCredentialStore(self.logger)


if __name__ == "__main__":
    unittest.main()
