# phonectl/protocol/events.py
"""
Event names understood by the phone firmware.

Outbound commands are fire-and-forget; the device never acknowledges them.
Inbound notifications other than the ones listed here are displayed only.
"""

# Outbound (client -> device)
LED_ON = "led_on"
LED_OFF = "led_off"
RING = "ring"            # payload: {"ringtone": "<file>.wav"}
STOP = "stop"

# Inbound (device -> client)
LED_STATE = "led_state"                  # payload: {"state": "on" | "off"}
RINGTONE_STOPPED = "ringtone_stopped"

# Envelope fields owned by the codec; callers may not supply them as payload.
RESERVED_FIELDS = ("event", "timestamp", "timestamp_formatted")

DEFAULT_RINGTONE = "telephone-ring-02.wav"
