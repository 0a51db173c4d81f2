"""Language support primitives for share-files console output with Rich styling."""

from __future__ import annotations

from typing import Dict, Optional

from rich.text import Text

# Supported interface languages
LANGUAGES: Dict[str, str] = {
    "en": "English",
    "ja": "日本語",
}

MESSAGES: Dict[str, Dict[str, str]] = {
    "en": {
        "cli_description": "Peer-to-peer file transfer over WebRTC",
        "cli_usage": "%(prog)s [command]",
        "cli_usage_prefix": "usage:",
        "cli_error": "Error: {error}",
        "cli_commands_title": "commands",
        "cli_positionals_title": "positional arguments",
        "cli_optionals_title": "optional arguments",
        "cli_version_help": "show share-files version and exit",
        "cli_version_output": "share-files version {version}",
        "cli_help_help": "show this help message and exit",
        "cli_send_help": "Share a file with everyone who joins the room",
        "cli_send_usage": "%(prog)s --file <path> [--room-id <id>] [--endpoint <url>]",
        "cli_send_room_help": "Join an existing room instead of creating one",
        "cli_send_file_help": "Path to the file to send",
        "cli_receive_help": "Receive a file from the sender in a room",
        "cli_receive_usage": "%(prog)s --room-id <id> [--output-dir <dir>] [--endpoint <url>]",
        "cli_receive_room_help": "Room id shared by the sender",
        "cli_receive_output_help": "Directory where received files are saved (default: current directory)",
        "cli_endpoint_help": "Service endpoint (overrides SHARE_FILES_ENDPOINT)",
        "cli_quiet_help": "Only print errors",
        "cli_settings_help": "Show or change saved settings",
        "cli_settings_language_help": "Interface language ({codes})",
        "cli_settings_endpoint_help": "Default service endpoint (empty to reset)",
        "cli_settings_output_help": "Default directory for received files (empty to reset)",
        "settings_language_invalid": "Unknown language '{value}'. Available: {codes}",
        "settings_language_updated": "Language set to {language_name}.",
        "settings_endpoint_updated": "Endpoint set to {endpoint}.",
        "settings_endpoint_reset": "Endpoint reset to the default.",
        "settings_output_updated": "Default output directory set to {path}.",
        "settings_current": "Language: {language_name}\nEndpoint: {endpoint}\nOutput directory: {output_dir}",
        "file_not_found": "File not found: {path}",
        "file_invalid": "Not a regular file: {path}",
        "endpoint_invalid": "Invalid endpoint: {error}",
        "receive_dir_error": "Unable to prepare output directory: {error}",
        "receive_dir_set": "Files will be saved to: {path}",
        "room_create_failed": "Could not create a room: {error}",
        "role_mismatch_send": "This command must be the sender (server assigned '{role}'); connect first or use receive.",
        "role_mismatch_receive": "This command must be the receiver (server assigned '{role}'); connect after the sender.",
        "fatal_error": "Error: {error}",
        "send_waiting": "Sharing {name} ({size}). Waiting for receivers... Press Ctrl+C to stop.",
        "receive_waiting": "Waiting for the sender... Press Ctrl+C to stop.",
        "send_shutdown": "Stopping sender...",
        "receive_shutdown": "Stopping receiver...",
        "log_room_id": "[room] id: {room}",
        "log_room_url": "[room] url: {url}",
        "log_ws_connecting": "[ws] connecting: {url}",
        "log_ws_role": "[ws] role: {role} ({cid})",
        "log_ws_peers": "[ws] peers: {count}",
        "log_ws_queue": "[ws] queue: {position}",
        "log_ws_queue_waiting": "[ws] queue: waiting",
        "log_ws_peer_left": "[ws] peer-left: {peer}",
        "log_ws_closed": "[ws] signaling stream closed",
        "log_peer_start": "[rtc] session start: {peer}",
        "log_offer_sent": "[rtc] offer sent: {peer} (sid {sid})",
        "log_offer_received": "[rtc] offer received: {peer} (sid {sid})",
        "log_answer_sent": "[rtc] answer sent: {peer} (sid {sid})",
        "log_answer_applied": "[rtc] answer applied: {peer} (sid {sid})",
        "log_answer_stale": "[rtc] stale answer ignored: {peer} (sid {sid})",
        "log_offer_late": "[rtc] offer after negotiation timeout ignored: {peer} (sid {sid})",
        "log_candidate_dropped": "[rtc] stale candidate dropped: {peer} (sid {sid})",
        "log_candidate_foreign": "[rtc] candidate from {peer} routed to bound peer {bound}",
        "log_rtc_state": "[rtc] connectionState: {peer} {state}",
        "log_channel_open": "[rtc] datachannel open: {peer}",
        "log_channel_closed": "[rtc] datachannel closed: {peer}",
        "log_negotiation_timeout": "[rtc] negotiation timed out after {seconds}s: {peer}",
        "log_send_start": "[send] {peer}: {name} ({size})",
        "log_send_done": "[send] completed: {peer}",
        "log_send_error": "[send] error: {peer}: {reason}",
        "log_task_failed": "[rtc] background task failed: {reason}",
        "log_recv_meta": "[recv] meta: {name} ({mime}, {size} bytes)",
        "log_recv_encrypted": "[recv] error: encrypted files are not supported",
        "log_recv_error": "[recv] error: {reason}",
        "log_recv_completed": "[recv] completed: {path}",
        "log_recv_size_mismatch": "[recv] size mismatch: {path} received {received} of {expected} bytes",
        "log_recv_abandoned": "[recv] incomplete file discarded: {path} ({received} of {expected} bytes)",
        "progress_line": "{transferred} / {total} ({rate}/s)",
    },
    "ja": {
        "cli_description": "WebRTC による P2P ファイル転送",
        "cli_usage": "%(prog)s [コマンド]",
        "cli_usage_prefix": "使い方:",
        "cli_error": "エラー: {error}",
        "cli_commands_title": "コマンド",
        "cli_positionals_title": "位置引数",
        "cli_optionals_title": "オプション",
        "cli_version_help": "share-files のバージョンを表示して終了",
        "cli_version_output": "share-files バージョン {version}",
        "cli_help_help": "このヘルプを表示して終了",
        "cli_send_help": "ルームに参加した相手へファイルを送信",
        "cli_send_usage": "%(prog)s --file <パス> [--room-id <ID>] [--endpoint <URL>]",
        "cli_send_room_help": "新しいルームを作らず既存のルームに参加",
        "cli_send_file_help": "送信するファイルのパス",
        "cli_receive_help": "ルームの送信者からファイルを受信",
        "cli_receive_usage": "%(prog)s --room-id <ID> [--output-dir <ディレクトリ>] [--endpoint <URL>]",
        "cli_receive_room_help": "送信者から共有されたルーム ID",
        "cli_receive_output_help": "受信ファイルの保存先（既定: カレントディレクトリ）",
        "cli_endpoint_help": "サービスのエンドポイント（SHARE_FILES_ENDPOINT より優先）",
        "cli_quiet_help": "エラーのみ表示",
        "cli_settings_help": "保存された設定を表示・変更",
        "cli_settings_language_help": "表示言語（{codes}）",
        "cli_settings_endpoint_help": "既定のサービスエンドポイント（空で初期化）",
        "cli_settings_output_help": "受信ファイルの既定の保存先（空で初期化）",
        "settings_language_invalid": "不明な言語です: '{value}'。利用可能: {codes}",
        "settings_language_updated": "言語を{language_name}に設定しました。",
        "settings_endpoint_updated": "エンドポイントを {endpoint} に設定しました。",
        "settings_endpoint_reset": "エンドポイントを既定値に戻しました。",
        "settings_output_updated": "既定の保存先を {path} に設定しました。",
        "settings_current": "言語: {language_name}\nエンドポイント: {endpoint}\n保存先: {output_dir}",
        "file_not_found": "ファイルが見つかりません: {path}",
        "file_invalid": "通常のファイルではありません: {path}",
        "endpoint_invalid": "エンドポイントが不正です: {error}",
        "receive_dir_error": "保存先ディレクトリを準備できません: {error}",
        "receive_dir_set": "保存先: {path}",
        "room_create_failed": "ルームを作成できませんでした: {error}",
        "role_mismatch_send": "このコマンドは送信側である必要があります（割り当て: '{role}'）。先に接続するか receive を使ってください。",
        "role_mismatch_receive": "このコマンドは受信側である必要があります（割り当て: '{role}'）。送信者の後に接続してください。",
        "fatal_error": "エラー: {error}",
        "send_waiting": "{name}（{size}）を共有中。受信者を待っています… Ctrl+C で終了。",
        "receive_waiting": "送信者を待っています… Ctrl+C で終了。",
        "send_shutdown": "送信を停止しています…",
        "receive_shutdown": "受信を停止しています…",
        "log_room_id": "[room] ID: {room}",
        "log_room_url": "[room] URL: {url}",
        "log_ws_connecting": "[ws] 接続中: {url}",
        "log_ws_role": "[ws] 役割: {role} ({cid})",
        "log_ws_peers": "[ws] 参加者数: {count}",
        "log_ws_queue": "[ws] 待機順: {position}",
        "log_ws_queue_waiting": "[ws] 待機中",
        "log_ws_peer_left": "[ws] 退出: {peer}",
        "log_ws_closed": "[ws] シグナリング切断",
        "log_peer_start": "[rtc] セッション開始: {peer}",
        "log_offer_sent": "[rtc] offer 送信: {peer} (sid {sid})",
        "log_offer_received": "[rtc] offer 受信: {peer} (sid {sid})",
        "log_answer_sent": "[rtc] answer 送信: {peer} (sid {sid})",
        "log_answer_applied": "[rtc] answer 適用: {peer} (sid {sid})",
        "log_answer_stale": "[rtc] 古い answer を無視: {peer} (sid {sid})",
        "log_offer_late": "[rtc] タイムアウト後の offer を無視: {peer} (sid {sid})",
        "log_candidate_dropped": "[rtc] 古い candidate を破棄: {peer} (sid {sid})",
        "log_candidate_foreign": "[rtc] {peer} からの candidate を接続中の {bound} に適用",
        "log_rtc_state": "[rtc] 接続状態: {peer} {state}",
        "log_channel_open": "[rtc] データチャネル準備完了: {peer}",
        "log_channel_closed": "[rtc] データチャネル切断: {peer}",
        "log_negotiation_timeout": "[rtc] {seconds} 秒以内に接続できませんでした: {peer}",
        "log_send_start": "[send] {peer}: {name} ({size})",
        "log_send_done": "[send] 送信完了: {peer}",
        "log_send_error": "[send] エラー: {peer}: {reason}",
        "log_task_failed": "[rtc] バックグラウンド処理に失敗しました: {reason}",
        "log_recv_meta": "[recv] メタ情報: {name} ({mime}, {size} バイト)",
        "log_recv_encrypted": "[recv] エラー: 暗号化ファイルには対応していません",
        "log_recv_error": "[recv] エラー: {reason}",
        "log_recv_completed": "[recv] 受信完了: {path}",
        "log_recv_size_mismatch": "[recv] サイズ不一致: {path} {expected} バイト中 {received} バイト受信",
        "log_recv_abandoned": "[recv] 未完了のファイルを破棄: {path} ({expected} バイト中 {received} バイト)",
        "progress_line": "{transferred} / {total} ({rate}/s)",
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
    "info": "bright_black",
    "success": "bold green",
    "warning": "bold yellow",
    "error": "bold red",
}


MESSAGE_TONES: Dict[str, str] = {
    "file_not_found": "error",
    "file_invalid": "error",
    "endpoint_invalid": "error",
    "receive_dir_error": "error",
    "room_create_failed": "error",
    "role_mismatch_send": "error",
    "role_mismatch_receive": "error",
    "fatal_error": "error",
    "settings_language_invalid": "error",
    "settings_language_updated": "success",
    "settings_endpoint_updated": "success",
    "settings_endpoint_reset": "success",
    "settings_output_updated": "success",
    "send_shutdown": "info",
    "receive_shutdown": "info",
    "log_answer_stale": "info",
    "log_offer_late": "warning",
    "log_candidate_dropped": "info",
    "log_candidate_foreign": "warning",
    "log_negotiation_timeout": "warning",
    "log_send_done": "success",
    "log_send_error": "error",
    "log_task_failed": "error",
    "log_recv_encrypted": "error",
    "log_recv_error": "error",
    "log_recv_completed": "success",
    "log_recv_size_mismatch": "warning",
    "log_recv_abandoned": "warning",
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
