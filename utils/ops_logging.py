import datetime
import json
import logging


def log_structured(event: str, level: int = logging.INFO, **fields):
    payload = {
        "event": event,
        "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
    }
    payload.update(fields)
    logging.log(level, json.dumps(payload, ensure_ascii=False, default=str))
