import platform
from datetime import datetime

import psutil


def get_state():
    """Collects current system state."""
    battery = psutil.sensors_battery() if hasattr(psutil, "sensors_battery") else None
    return {
        "time": str(datetime.now()),
        "platform": platform.system(),
        "platform-release": platform.release(),
        "cpu_percent": psutil.cpu_percent(interval=0.2),
        "memory_percent": psutil.virtual_memory().percent,
        "disk_percent": psutil.disk_usage("/").percent,
        "battery_percent": battery.percent if battery else None,
        "running_processes": len(psutil.pids()),
    }


def _gib(n):
    return f"{n / (1024 ** 3):.1f}G"


def get_system_info(kind):
    """One-line answer for battery, disk/storage, memory/ram or cpu."""
    kind = (kind or "").lower().strip()
    try:
        if kind == "battery":
            battery = psutil.sensors_battery()
            if battery is None:
                return "Couldn't retrieve system information"
            plugged = "charging" if battery.power_plugged else "on battery"
            return f"Battery at {battery.percent:.0f}% ({plugged})"
        if kind in ("disk", "storage"):
            du = psutil.disk_usage("/")
            return f"Disk: {_gib(du.used)} used of {_gib(du.total)} ({du.percent:.0f}%), {_gib(du.free)} free"
        if kind in ("memory", "ram"):
            vm = psutil.virtual_memory()
            return f"Memory: {_gib(vm.used)} used of {_gib(vm.total)} ({vm.percent:.0f}%)"
        if kind == "cpu":
            return f"CPU usage: {psutil.cpu_percent(interval=0.5):.0f}% across {psutil.cpu_count()} cores"
    except Exception as e:
        return f"Error getting system information: {e}"
    return "I don't know how to get that system information"
