"""requests 封装的测试，不发出真实网络请求。"""

import pathlib
import sys
import unittest
from unittest.mock import MagicMock

import requests

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autocheckin.exceptions import NetworkError  # noqa: E402
from autocheckin.logger_setup import LoggerInterface  # noqa: E402
from autocheckin.services.http_client import HttpClient  # noqa: E402


def _response(status_code=200, json_data=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.reason = "OK" if status_code < 400 else "Bad Gateway"
    response.text = text
    if json_data is None:
        response.json.side_effect = ValueError("not json")
    else:
        response.json.return_value = json_data
    return response


class TestHttpClient(unittest.TestCase):
    def setUp(self) -> None:
        self.session = MagicMock(spec=requests.Session)
        self.session.headers = {}
        self.client = HttpClient(MagicMock(spec=LoggerInterface), timeout=15, session=self.session)

    def test_json_body_is_compact(self) -> None:
        self.session.request.return_value = _response(json_data={"Data": "签到成功"})

        result = self.client.post(
            "https://api.example.com/submit",
            token="Bearer abc",
            body={"Signature": "张三", "Location": '{"latitude":1,"longitude":2}'},
        )

        self.assertEqual(result, {"Data": "签到成功"})
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("POST", "https://api.example.com/submit"))
        self.assertEqual(
            kwargs["data"],
            '{"Signature":"张三","Location":"{\\"latitude\\":1,\\"longitude\\":2}"}'.encode("utf-8"),
        )
        self.assertEqual(kwargs["headers"]["authorization"], "Bearer abc")
        self.assertEqual(kwargs["timeout"], 15)

    def test_text_response_and_raw_body(self) -> None:
        self.session.request.return_value = _response(text="window.QRLogin.code = 408;")

        result = self.client.get("https://long.open.weixin.qq.com/connect/l/qrconnect", body="raw")

        self.assertEqual(result, "window.QRLogin.code = 408;")
        self.assertEqual(self.session.request.call_args.kwargs["data"], "raw")
        self.assertNotIn("authorization", self.session.request.call_args.kwargs["headers"])

    def test_non_2xx_becomes_network_error(self) -> None:
        self.session.request.return_value = _response(status_code=502, text="bad gateway")

        with self.assertRaises(NetworkError) as ctx:
            self.client.get("https://api.example.com/info")
        self.assertEqual(ctx.exception.http_status, 502)

    def test_transport_failure_becomes_network_error(self) -> None:
        self.session.request.side_effect = requests.ConnectionError("reset")

        with self.assertRaises(NetworkError) as ctx:
            self.client.get("https://api.example.com/info")
        self.assertIsInstance(ctx.exception.original, requests.ConnectionError)


if __name__ == "__main__":
    unittest.main()
