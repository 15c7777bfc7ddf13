"""签到请求体构造与签到服务的测试。"""

import json
import pathlib
import sys
import unittest
from unittest.mock import MagicMock

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from autocheckin.constants import AppConstants  # noqa: E402
from autocheckin.exceptions import ValidationError  # noqa: E402
from autocheckin.logger_setup import LoggerInterface  # noqa: E402
from autocheckin.services.checkin_service import (  # noqa: E402
    CheckinService,
    build_checkin_payload,
    encode_location,
    validate_location,
)
from autocheckin.services.http_client import HttpClient  # noqa: E402


class TestBuildCheckinPayload(unittest.TestCase):
    def test_default_payload(self) -> None:
        payload = build_checkin_payload("Alice")

        self.assertEqual(payload, {
            "Id": 0,
            "ThreadId": 163231508,
            "Signature": "Alice",
            "RecordValues": [
                {"FieldId": 1, "Values": [], "Texts": [], "HasValue": False},
                {
                    "FieldId": 2,
                    "Values": ['{"latitude":28.423147,"longitude":117.976543}'],
                    "Texts": ["上饶市信州区•上饶师范学院"],
                    "HasValue": True,
                },
            ],
        })

    def test_signature_is_trimmed(self) -> None:
        self.assertEqual(build_checkin_payload("  Bob ")["Signature"], "Bob")

    def test_blank_signature_rejected(self) -> None:
        for signature in ("", "   "):
            with self.assertRaises(ValidationError) as ctx:
                build_checkin_payload(signature)
            self.assertEqual(ctx.exception.field, "signature")

    def test_custom_location_is_encoded(self) -> None:
        payload = build_checkin_payload("Alice", {"latitude": 30.5, "longitude": 114.25})
        self.assertEqual(
            json.loads(payload["RecordValues"][1]["Values"][0]),
            {"latitude": 30.5, "longitude": 114.25},
        )


class TestValidateLocation(unittest.TestCase):
    def test_default_location(self) -> None:
        self.assertEqual(validate_location(None).as_dict(), AppConstants.DEFAULT_LOCATION)

    def test_bounds_are_inclusive(self) -> None:
        location = validate_location({"latitude": 90, "longitude": 180})
        self.assertEqual(encode_location(location), '{"latitude":90,"longitude":180}')
        validate_location({"latitude": -90, "longitude": -180})

    def test_latitude_out_of_range(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_location({"latitude": 91, "longitude": 0})
        self.assertEqual(ctx.exception.field, "latitude")

    def test_longitude_out_of_range(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_location({"latitude": 0, "longitude": -180.5})
        self.assertEqual(ctx.exception.field, "longitude")

    def test_non_numeric_latitude(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_location({"latitude": "north", "longitude": 0})
        self.assertEqual(ctx.exception.field, "latitude")

    def test_missing_longitude(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            validate_location({"latitude": 10})
        self.assertEqual(ctx.exception.field, "longitude")


class TestCheckinService(unittest.TestCase):
    def setUp(self) -> None:
        self.http = MagicMock(spec=HttpClient)
        self.service = CheckinService(MagicMock(spec=LoggerInterface), self.http)

    def test_fetch_info_uses_token(self) -> None:
        self.http.get.return_value = {"Data": {"Name": "daily"}}

        info = self.service.fetch_info("Bearer abc")

        self.assertEqual(info, {"Data": {"Name": "daily"}})
        self.http.get.assert_called_once_with(
            "https://i-api.jielong.com/api/Thread/CheckIn/NameScope?threadId=163231508",
            token="Bearer abc",
        )

    def test_submit_posts_payload_and_counts(self) -> None:
        self.http.post.return_value = {"Data": "签到成功"}

        result = self.service.submit("Bearer abc", "Alice")

        self.assertEqual(result, {"Data": "签到成功"})
        self.http.post.assert_called_once_with(
            "https://i-api.jielong.com/api/CheckIn/EditRecord",
            token="Bearer abc",
            body=build_checkin_payload("Alice"),
        )
        self.assertEqual(self.service.get_total_successful_checkins(), 1)

    def test_blank_token_rejected_before_request(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            self.service.submit("  ", "Alice")
        self.assertEqual(ctx.exception.field, "token")
        self.http.post.assert_not_called()
        self.assertEqual(self.service.get_total_successful_checkins(), 0)

    def test_invalid_signature_rejected_before_request(self) -> None:
        with self.assertRaises(ValidationError):
            self.service.submit("Bearer abc", "")
        self.http.post.assert_not_called()


if __name__ == "__main__":
    unittest.main()
