"""Language support primitives for Sealdrop status text and CLI output."""

from __future__ import annotations

from typing import Dict, Optional

from rich.text import Text

# Supported interface languages
LANGUAGES: Dict[str, str] = {
    "en": "English",
    "zh": "中文",
}

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "status_file_selected": "File selected",
        "status_preparing": "Preparing file...",
        "status_sent": "File sent successfully",
        "status_send_failed": "Error sending file: {error}",
        "status_send_busy": "A file is already being sent",
        "status_receiving": "Receiving file...",
        "status_verifying": "Verifying file...",
        "status_received": "File received and verified",
        "status_receive_failed": "Error receiving file: {error}",
        "cli_description": "Sealdrop encrypted file handoff",
        "cli_usage": "%(prog)s [command]",
        "cli_usage_prefix": "usage:",
        "cli_error": "Error: {error}",
        "cli_commands_title": "commands",
        "cli_positionals_title": "positional arguments",
        "cli_optionals_title": "optional arguments",
        "cli_version_help": "show Sealdrop version and exit",
        "cli_version_output": "Sealdrop version {version}",
        "cli_help_help": "show this help message and exit",
        "cli_debug_help": "print debug logs",
        "cli_send_help": "Send a file to a peer at host[:port]",
        "cli_send_target_help": "Peer address as host[:port] or [IPv6]:port",
        "cli_send_path_help": "Path to the file to send",
        "cli_send_usage": "%(prog)s <target> <path>",
        "cli_receive_help": "Wait for a peer and save the files it sends",
        "cli_receive_port_help": "Port to listen on",
        "cli_receive_dir_help": "Directory for received files",
        "cli_receive_once_help": "Exit after the first file arrives",
        "cli_settings_help": "Update saved settings",
        "cli_settings_language_help": "Interface language code",
        "cli_settings_max_size_help": "Largest payload in bytes that may be sent or received",
        "cli_quiet_help": "only print errors",
        "send_target_invalid": "Invalid target: {target}",
        "send_path_invalid": "Not a file: {path}",
        "send_connecting": "Connecting to {target}...",
        "send_connect_failed": "Could not reach {target}: {error}",
        "send_selected": "Sending {name} ({size})",
        "send_digest": "SHA-256: {digest}",
        "receive_dir_set": "Received files are saved to {path}",
        "receive_dir_error": "Cannot use download directory: {error}",
        "receive_waiting": "Waiting for a peer on port {port}...",
        "receive_peer_connected": "Peer connected from {address}",
        "receive_saved": "Saved {name} ({size}) to {path}",
        "receive_save_failed": "Could not save {name}: {error}",
        "receive_peer_closed": "Peer disconnected",
        "receive_shutdown": "Receiver stopped",
        "settings_port_invalid": "Port must be between 1 and 65535",
        "settings_language_invalid": "Unsupported language: {value}. Choose from {choices}",
        "settings_language_updated": "Language set to {language_name}",
        "settings_max_size_invalid": "Maximum size must be a positive number of bytes",
        "settings_max_size_updated": "Maximum payload size set to {size}",
        "settings_unchanged": "Nothing to update",
        "security_notice": "Note: the transfer key travels with the file, so anyone who can read this connection can read the file",
    },
    "zh": {
        "status_file_selected": "已选择文件",
        "status_preparing": "正在准备文件...",
        "status_sent": "文件发送成功",
        "status_send_failed": "发送文件出错：{error}",
        "status_send_busy": "已有文件正在发送",
        "status_receiving": "正在接收文件...",
        "status_verifying": "正在校验文件...",
        "status_received": "文件已接收并通过校验",
        "status_receive_failed": "接收文件出错：{error}",
        "cli_description": "Sealdrop 加密文件传输",
        "cli_usage": "%(prog)s [命令]",
        "cli_usage_prefix": "用法:",
        "cli_error": "错误：{error}",
        "cli_commands_title": "命令",
        "cli_positionals_title": "位置参数",
        "cli_optionals_title": "可选参数",
        "cli_version_help": "显示 Sealdrop 版本并退出",
        "cli_version_output": "Sealdrop 版本 {version}",
        "cli_help_help": "显示帮助信息并退出",
        "cli_debug_help": "输出调试日志",
        "cli_send_help": "向 host[:port] 处的对端发送文件",
        "cli_send_target_help": "对端地址，格式为 host[:port] 或 [IPv6]:port",
        "cli_send_path_help": "要发送的文件路径",
        "cli_send_usage": "%(prog)s <目标> <路径>",
        "cli_receive_help": "等待对端连接并保存收到的文件",
        "cli_receive_port_help": "监听端口",
        "cli_receive_dir_help": "接收文件的保存目录",
        "cli_receive_once_help": "收到第一个文件后退出",
        "cli_settings_help": "更新已保存的设置",
        "cli_settings_language_help": "界面语言代码",
        "cli_settings_max_size_help": "允许发送或接收的最大字节数",
        "cli_quiet_help": "仅输出错误",
        "send_target_invalid": "无效目标：{target}",
        "send_path_invalid": "不是文件：{path}",
        "send_connecting": "正在连接 {target}...",
        "send_connect_failed": "无法连接 {target}：{error}",
        "send_selected": "正在发送 {name}（{size}）",
        "send_digest": "SHA-256：{digest}",
        "receive_dir_set": "接收的文件将保存到 {path}",
        "receive_dir_error": "无法使用下载目录：{error}",
        "receive_waiting": "正在端口 {port} 等待对端...",
        "receive_peer_connected": "对端已连接：{address}",
        "receive_saved": "已保存 {name}（{size}）到 {path}",
        "receive_save_failed": "无法保存 {name}：{error}",
        "receive_peer_closed": "对端已断开",
        "receive_shutdown": "接收已停止",
        "settings_port_invalid": "端口必须在 1 到 65535 之间",
        "settings_language_invalid": "不支持的语言：{value}。可选：{choices}",
        "settings_language_updated": "语言已设置为 {language_name}",
        "settings_max_size_invalid": "最大大小必须是正整数字节数",
        "settings_max_size_updated": "最大传输大小已设置为 {size}",
        "settings_unchanged": "没有需要更新的内容",
        "security_notice": "注意：传输密钥与文件一同发送，能读取此连接的人也能读取文件",
    },
}


def get_message(key: str, language: str, **kwargs: object) -> str:
    """
    Retrieve a formatted message for the requested language.
    Falls back to English when the message or language is missing.
    """

    lang_messages = MESSAGES.get(language, MESSAGES["en"])
    template = lang_messages.get(key, MESSAGES["en"].get(key, key))
    return template.format(**kwargs)


TONE_STYLES: Dict[str, str] = {
    "heading": "bold bright_cyan",
    "info": "bright_black",
    "success": "bold green",
    "warning": "bold yellow",
    "error": "bold red",
    "debug": "magenta",
}


MESSAGE_TONES: Dict[str, str] = {
    "status_file_selected": "info",
    "status_preparing": "info",
    "status_sent": "success",
    "status_send_failed": "error",
    "status_send_busy": "warning",
    "status_receiving": "info",
    "status_verifying": "info",
    "status_received": "success",
    "status_receive_failed": "error",
    "cli_error": "error",
    "send_target_invalid": "error",
    "send_path_invalid": "error",
    "send_connecting": "info",
    "send_connect_failed": "error",
    "send_digest": "info",
    "receive_dir_error": "error",
    "receive_waiting": "heading",
    "receive_peer_connected": "info",
    "receive_saved": "success",
    "receive_save_failed": "error",
    "receive_peer_closed": "warning",
    "settings_port_invalid": "error",
    "settings_language_invalid": "error",
    "settings_language_updated": "success",
    "settings_max_size_invalid": "error",
    "settings_max_size_updated": "success",
    "security_notice": "warning",
}


def render_message(
    key: str,
    language: str,
    *,
    tone: Optional[str] = None,
    **kwargs: object,
) -> Text:
    """Return a Rich Text object for the requested message with consistent styling."""

    message = get_message(key, language, **kwargs)
    text = Text(message)
    resolved_tone = tone or MESSAGE_TONES.get(key)
    if resolved_tone:
        style = TONE_STYLES.get(resolved_tone, resolved_tone)
        if style:
            text.stylize(style)
    return text


__all__ = ["LANGUAGES", "MESSAGES", "get_message", "render_message", "TONE_STYLES", "MESSAGE_TONES"]
