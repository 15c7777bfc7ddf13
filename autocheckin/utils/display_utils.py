# autocheckin/utils/display_utils.py
from io import BytesIO

from colorama import Fore, Style
from PIL import Image # type: ignore

from autocheckin.constants import AppConstants, SCRIPT_VERSION
from autocheckin.logger_setup import LoggerInterface, LogLevel


def show_app_banner(logger_instance: LoggerInterface, mode: str) -> None:
    """显示应用的基本信息：名称、版本、运行模式。"""
    separator_top = f"{Fore.CYAN}{'=' * 70}{Style.RESET_ALL}"
    separator_bottom = f"{Fore.CYAN}{'-' * 70}{Style.RESET_ALL}"
    lines = [
        "\n" + separator_top,
        f"{Fore.CYAN}欢迎使用 {AppConstants.APP_NAME} v{SCRIPT_VERSION}{Style.RESET_ALL}",
        f" {Fore.GREEN}签到平台: {AppConstants.APP_PROJECT_LINK}{Style.RESET_ALL}",
        f" {Fore.GREEN}运行模式: {mode}{Style.RESET_ALL}",
        separator_bottom + "\n",
    ]
    for line in lines:
        print(line)
    logger_instance.log(f"应用信息: {AppConstants.APP_NAME} v{SCRIPT_VERSION}, 模式: {mode}", LogLevel.INFO)


def render_qr_to_terminal(image_bytes: bytes, size: int = AppConstants.QR_TERMINAL_SIZE) -> str:
    """
    把二维码图片缩放后渲染成半块字符。

    每个字符表示上下两个像素，所以输出 size 列、size/2 行。
    深色像素用空白表示，在深色背景终端上扫码更稳定。
    """
    img = Image.open(BytesIO(image_bytes)).convert("L")
    img = img.resize((size, size), Image.NEAREST)
    pixels = img.load()

    def dark(x: int, y: int) -> bool:
        return y < size and pixels[x, y] < 128

    rows = []
    for y in range(0, size, 2):
        chars = []
        for x in range(size):
            top, bottom = dark(x, y), dark(x, y + 1)
            if top and bottom:
                chars.append(" ")
            elif top:
                chars.append("▄")
            elif bottom:
                chars.append("▀")
            else:
                chars.append("█")
        rows.append("".join(chars))
    return "\n".join(rows)

