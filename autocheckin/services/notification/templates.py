# autocheckin/services/notification/templates.py
import json
from typing import Any, Optional, Tuple

from autocheckin.constants import AppConstants


def qr_ready_email(uuid: str, has_image: bool) -> Tuple[str, str]:
    text = AppConstants.QR_EMAIL_TEXT
    if not has_image:
        text += f"\n二维码图片获取失败，请打开链接扫码：{AppConstants.WECHAT_QRCODE_IMAGE_URL.format(uuid=uuid)}"
    return AppConstants.QR_EMAIL_SUBJECT, text


def checkin_result_email(result: Any) -> Tuple[str, str]:
    """主题取结果中的 Data，正文优先取 Description，否则为格式化的完整结果"""
    data = result.get("Data") if isinstance(result, dict) else None
    description = result.get("Description") if isinstance(result, dict) else None

    if isinstance(data, str):
        summary = data
    elif data:
        summary = json.dumps(data, ensure_ascii=False, default=str)
    else:
        summary = ""
    if description:
        body = str(description)
    else:
        body = json.dumps(result, ensure_ascii=False, indent=2, default=str)
    return f"签到结果 - {summary or '未知'}", body


def credential_expired_email(reauth_url: Optional[str], expiring_soon: bool) -> Tuple[str, str, str]:
    """返回 (主题, 纯文本正文, HTML 正文)"""
    subject = "⚠️ Token即将过期提醒" if expiring_soon else "⚠️ Token已过期，需要重新授权"
    title = "Token即将过期提醒" if expiring_soon else "Token已过期提醒"
    title_color = "#ffc107" if expiring_soon else "#ff6b6b"
    if expiring_soon:
        status_message = "您的微信登录Token将在1小时内过期，请及时更新以避免影响自动签到功能。"
        action_message = "为了避免影响自动签到功能，请提前重新授权："
    else:
        status_message = "您的微信登录Token已过期，自动签到功能暂时无法使用。"
        action_message = "为了继续使用自动签到功能，请重新进行授权："
    tip_body = "建议在Token过期前完成重新授权，这样可以确保自动签到功能不中断。"

    if reauth_url:
        action_html = f"""
          <div style="text-align: center; margin: 20px 0;">
            <a href="{reauth_url}" style="background-color: #007bff; color: white; padding: 12px 24px; text-decoration: none; border-radius: 5px; display: inline-block;">
              📱 访问网页重新授权
            </a>
          </div>
          <p style="text-align: center; color: #666; font-size: 14px;">或者复制链接到浏览器：{reauth_url}</p>"""
        action_text = f"请访问以下链接重新授权：{reauth_url}"
    else:
        action_html = "\n          <p><strong>请运行程序重新生成二维码进行扫码授权。</strong></p>"
        action_text = "请运行程序重新生成二维码进行扫码授权。"

    tip_html = ""
    if expiring_soon:
        tip_html = f"""
        <div style="background: #fff3cd; border: 1px solid #ffeaa7; border-radius: 5px; padding: 15px; margin: 20px 0;">
          <p style="margin: 0; color: #856404; font-size: 14px;">
            💡 <strong>提示：</strong>{tip_body}
          </p>
        </div>"""

    html = f"""
      <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
        <h2 style="color: {title_color};">⚠️ {title}</h2>
        <p>您好！</p>
        <p>{status_message}</p>
        <p>{action_message}</p>{action_html}{tip_html}
        <hr style="border: 1px solid #eee; margin: 20px 0;">
        <p style="color: #666; font-size: 12px;">
          此邮件由自动签到系统发送<br>
          如有问题，请检查系统配置或联系管理员
        </p>
      </div>
    """

    lines = [title, "", "您好！", "", status_message, "", action_message, action_text]
    if expiring_soon:
        lines += ["", f"提示：{tip_body}"]
    lines += ["", "---", "此邮件由自动签到系统发送"]
    return subject, "\n".join(lines), html
