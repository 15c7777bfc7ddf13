# autocheckin/services/checkin_service.py
import json
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from autocheckin.config.models import Location
from autocheckin.constants import AppConstants
from autocheckin.exceptions import ValidationError
from autocheckin.logger_setup import LoggerInterface, LogLevel
from autocheckin.services.http_client import HttpClient, ResponseBody

LocationInput = Union[Location, Dict[str, Any]]


def validate_location(location: Optional[LocationInput]) -> Location:
    """校验坐标，未提供时使用默认位置；出错时 ValidationError.field 指向出错的字段"""
    if location is None:
        return Location(**AppConstants.DEFAULT_LOCATION)
    if isinstance(location, Location):
        return location
    try:
        return Location(**location)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field_name = str(first["loc"][0]) if first.get("loc") else "location"
        message = str(first.get("msg", "坐标无效")).replace("Value error, ", "")
        raise ValidationError(message, field=field_name) from None
    except TypeError:
        raise ValidationError("坐标必须是包含 latitude 与 longitude 的对象", field="location") from None


def _js_number(value: float) -> Union[int, float]:
    # 与前端 JSON.stringify 的输出保持一致：90.0 -> 90
    return int(value) if float(value).is_integer() else value


def encode_location(location: Location) -> str:
    return json.dumps(
        {"latitude": _js_number(location.latitude), "longitude": _js_number(location.longitude)},
        separators=(",", ":"),
    )


def build_checkin_payload(
    signature: str,
    location: Optional[LocationInput] = None,
    thread_id: int = AppConstants.THREAD_ID,
    place_name: str = AppConstants.DEFAULT_PLACE_NAME,
) -> Dict[str, Any]:
    """
    生成提交签到的请求体。

    字段结构由接龙接口决定：FieldId 1 为空字段，FieldId 2 为定位字段，
    同时携带坐标 JSON 与地点名称。
    """
    if not signature or not signature.strip():
        raise ValidationError("签名不能为空", field="signature")
    if not thread_id or thread_id <= 0:
        raise ValidationError("无效的接龙主题 ID", field="threadId")
    final_location = validate_location(location)
    return {
        "Id": 0,
        "ThreadId": thread_id,
        "Signature": signature.strip(),
        "RecordValues": [
            {"FieldId": 1, "Values": [], "Texts": [], "HasValue": False},
            {
                "FieldId": 2,
                "Values": [encode_location(final_location)],
                "Texts": [place_name],
                "HasValue": True,
            },
        ],
    }


class CheckinService:
    def __init__(
        self,
        logger: LoggerInterface,
        http_client: HttpClient,
        thread_id: int = AppConstants.THREAD_ID,
    ):
        self.logger = logger
        self.http = http_client
        self.thread_id = thread_id
        self.total_successful_checkins: int = 0

    def _require_token(self, token: str) -> None:
        if not token or not token.strip():
            raise ValidationError("token 不能为空", field="token")

    def fetch_info(self, token: str) -> ResponseBody:
        self._require_token(token)
        if not self.thread_id or self.thread_id <= 0:
            raise ValidationError("无效的接龙主题 ID", field="threadId")
        url = AppConstants.JIELONG_API_BASE + AppConstants.CHECKIN_INFO_PATH.format(thread_id=self.thread_id)
        self.logger.log(f"获取签到信息 (threadId={self.thread_id})...", LogLevel.INFO)
        info = self.http.get(url, token=token)
        self.logger.log(f"签到信息获取成功: {json.dumps(info, ensure_ascii=False)[:500]}", LogLevel.DEBUG)
        return info

    def submit(self, token: str, signature: str, location: Optional[LocationInput] = None) -> ResponseBody:
        self._require_token(token)
        payload = build_checkin_payload(signature, location, thread_id=self.thread_id)
        self.logger.log(
            f"提交签到 (threadId={self.thread_id}, 签名={payload['Signature']}, "
            f"位置={payload['RecordValues'][1]['Values'][0]})",
            LogLevel.INFO,
        )
        url = AppConstants.JIELONG_API_BASE + AppConstants.CHECKIN_SUBMIT_PATH
        result = self.http.post(url, token=token, body=payload)
        self.total_successful_checkins += 1
        self.logger.log(f"签到提交成功: {json.dumps(result, ensure_ascii=False)[:500]}", LogLevel.INFO)
        return result

    def get_total_successful_checkins(self) -> int:
        return self.total_successful_checkins
