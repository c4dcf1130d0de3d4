import os
import unittest
from unittest import mock

from chatmux.config import ClientConfig, load_config_from_env


class ClientConfigTests(unittest.TestCase):
    def test_ws_url_follows_http_scheme(self):
        self.assertEqual(ClientConfig("http://chat.test:8080/").ws_url("alice"), "ws://chat.test:8080/chat?username=alice")
        self.assertEqual(ClientConfig("https://chat.test").ws_url("bob"), "wss://chat.test/chat?username=bob")

    def test_identity_is_query_encoded(self):
        self.assertEqual(ClientConfig().ws_url("a b&c"), "ws://localhost:8080/chat?username=a+b%26c")

    def test_api_base_strips_trailing_slash(self):
        self.assertEqual(ClientConfig("http://chat.test/").api_base, "http://chat.test")


class LoadConfigFromEnvTests(unittest.TestCase):
    def test_defaults(self):
        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config_from_env()
        self.assertEqual(config, ClientConfig())

    def test_overrides(self):
        env = {
            "CHAT_API_BASE": "https://chat.example",
            "CHAT_WS_PATH": "/ws",
            "CHAT_WS_HEARTBEAT_S": "5",
            "CHAT_HTTP_TIMEOUT_S": "2.5",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config_from_env()
        self.assertEqual(config.ws_url("alice"), "wss://chat.example/ws?username=alice")
        self.assertEqual(config.heartbeat_s, 5.0)
        self.assertEqual(config.request_timeout_s, 2.5)

    def test_invalid_values_are_rejected(self):
        for env in (
            {"CHAT_WS_HEARTBEAT_S": "soon"},
            {"CHAT_HTTP_TIMEOUT_S": "0"},
            {"CHAT_WS_PATH": "chat"},
        ):
            with self.subTest(env=env), mock.patch.dict(os.environ, env, clear=True):
                with self.assertRaises(ValueError):
                    load_config_from_env()
