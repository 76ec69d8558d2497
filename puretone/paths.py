import os
import platform

APP_NAME = "PureToneAudiometry"

def _windows_appdata():
    base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA")
    if not base:
        base = os.path.expanduser("~")
    return os.path.join(base, APP_NAME)

def _mac_appdata():
    base = os.path.expanduser("~/Library/Application Support")
    return os.path.join(base, APP_NAME)

def _linux_appdata():
    base = os.environ.get("XDG_CONFIG_HOME") or os.path.expanduser("~/.config")
    return os.path.join(base, APP_NAME)

def get_app_data_dir(create=True):
    system = platform.system().lower()
    if "windows" in system:
        path = _windows_appdata()
    elif "darwin" in system or "mac" in system:
        path = _mac_appdata()
    else:
        path = _linux_appdata()
    if create:
        os.makedirs(path, exist_ok=True)
    return path

def path_settings():
    return os.path.join(get_app_data_dir(True), "settings.json")

def path_calibration():
    return os.path.join(get_app_data_dir(True), "calibration.json")

def get_log_file_path() -> str:
    return os.path.join(get_app_data_dir(True), 'puretone.log')
