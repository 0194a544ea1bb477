#The Mock ESP32 Transmission script simulates the weather station board
#posting temperature/humidity readings to the host. It generates mock
#readings and sends them as JSON payloads at regular intervals.

# Mock_ESP32_Transmission.py
import json
import os
import time
import urllib.error
import urllib.request

from Mock_Sensor_Generation import MockSensorGenerator
import MSG


JSON_HEADERS = {"Content-Type": "application/json"}


def _read_text(resp) -> str:
    return resp.read().decode("utf-8", errors="replace")


def post_json(url: str, payload: dict, timeout_s: float = 3.0) -> tuple[int, str]:
    """POST one reading. Returns (status, body); status 0 means the host was unreachable."""
    req = urllib.request.Request(
        url, data=json.dumps(payload).encode("utf-8"), headers=JSON_HEADERS, method="POST"
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            return resp.getcode(), _read_text(resp)
    except urllib.error.HTTPError as e:
        # 4xx/5xx from the host, e.g. a 400 for a rejected reading
        return e.code, _read_text(e)
    except urllib.error.URLError as e:
        return 0, str(e.reason)


def next_backoff(backoff_s: float, max_backoff_s: float = 8.0) -> float:
    return min(max_backoff_s, backoff_s * 2.0)


def main():
    ingest_url = os.getenv("INGEST_URL", "http://127.0.0.1:3000/api/readings")

    period_s = float(os.getenv("PERIOD_S", "2.0"))
    timeout_s = 3.0        # HTTP timeout
    backoff_s = 0.5        # retry backoff if server is down

    gen = MockSensorGenerator()

    print(f"[ESP32-MOCK] Sending to: {ingest_url}")
    print(f"[ESP32-MOCK] Period: {period_s}s")

    while True:
        msg = gen.generate()

        # Validate against the host's schema before sending
        try:
            MSG.validate_reading(msg)
        except ValueError as e:
            print(f"[VALIDATION-ERR] seq={gen.sequence} err={e}")
            time.sleep(period_s)
            continue

        status, body = post_json(ingest_url, msg, timeout_s=timeout_s)

        if status == 201:
            print(f"[OK] seq={gen.sequence} t={msg['temperature']} rh={msg['humidity']} -> {body}")
            backoff_s = 0.5  # reset backoff on success
            time.sleep(period_s)
        else:
            # status==0 means likely network/server unreachable
            print(f"[ERR] seq={gen.sequence} status={status} detail={body}")
            time.sleep(backoff_s)
            backoff_s = next_backoff(backoff_s)


if __name__ == "__main__":
    main()
