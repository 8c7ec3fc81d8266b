import json
import logging
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

LOG_FILE = Path("context_log.json")
MAX_ENTRIES = 200


def set_log_file(path):
    global LOG_FILE
    LOG_FILE = Path(path).expanduser()


def _empty():
    return {"history": [], "system_state": {}, "last_errors": []}


def read_log():
    try:
        with open(LOG_FILE, "r") as f:
            log = json.load(f)
    except (FileNotFoundError, json.JSONDecodeError):
        return _empty()
    for key, value in _empty().items():
        log.setdefault(key, value)
    return log


def write_log(log):
    try:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(LOG_FILE, "w") as f:
            json.dump(log, f, indent=2)
    except OSError as e:
        logger.debug(f"Context log not written: {e}")


def _trim(entries):
    del entries[:-MAX_ENTRIES]


def update_state(state):
    log = read_log()
    log["system_state"] = state
    log["history"].append({
        "timestamp": str(datetime.now()),
        "state": state
    })
    _trim(log["history"])
    write_log(log)


def append_action(utterance, steps, results):
    log = read_log()
    log["history"].append({
        "timestamp": str(datetime.now()),
        "utterance": utterance,
        "plan": list(steps),
        "results": list(results),
    })
    _trim(log["history"])
    write_log(log)


def append_error(error_msg):
    log = read_log()
    log["last_errors"].append({
        "timestamp": str(datetime.now()),
        "error": error_msg
    })
    _trim(log["last_errors"])
    write_log(log)
