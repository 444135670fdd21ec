"""ANT message ids, ANT+ page numbers, device types and timing constants."""

from __future__ import annotations

from typing import Final

# Serial message ids delivered by the transport
MESG_INVALID_ID: Final = 0x00
MESG_EVENT_ID: Final = 0x01
MESG_RESPONSE_EVENT_ID: Final = 0x40
MESG_BROADCAST_DATA_ID: Final = 0x4E
MESG_ACKNOWLEDGED_DATA_ID: Final = 0x4F
MESG_EXT_BROADCAST_DATA_ID: Final = 0x5D
MESG_STARTUP_MESG_ID: Final = 0x6F

BROADCAST_MESSAGE_IDS: Final = frozenset({MESG_BROADCAST_DATA_ID, MESG_EXT_BROADCAST_DATA_ID})
IGNORED_MESSAGE_IDS: Final = frozenset({MESG_INVALID_ID, MESG_EVENT_ID, MESG_RESPONSE_EVENT_ID})

# Broadcast layout: [channel][8 payload bytes][flags][trailer...]
PAYLOAD_OFFSET: Final = 1
PAYLOAD_LENGTH: Final = 8
FLAGS_OFFSET: Final = 9
TRAILER_OFFSET: Final = 10
# Compact layout keeps the device number right after the payload
COMPACT_DEVICE_NUMBER_OFFSET: Final = 9
COMPACT_TRAILER_MIN_START: Final = 11

# Flagged extended data blocks
CHANNEL_ID_EXT_FLAG: Final = 0x80
RSSI_EXT_FLAG: Final = 0x40
RX_TIMESTAMP_FLAG: Final = 0x20
CHANNEL_ID_BLOCK_LENGTH: Final = 4
RSSI_BLOCK_LENGTH: Final = 3
RX_TIMESTAMP_BLOCK_LENGTH: Final = 2

# Compact trailer field bits, consumed from bit 4 down to bit 0
TRAILER_PROXIMITY_BIT: Final = 0x10
TRAILER_RSSI_BIT: Final = 0x08
TRAILER_CHANNEL_TYPE_BIT: Final = 0x04
TRAILER_TX_TYPE_BIT: Final = 0x02
TRAILER_DEVICE_TYPE_BIT: Final = 0x01
TRAILER_FIELD_MASK: Final = 0x1F

# ANT+ device types
DEVICE_TYPE_WILDCARD: Final = 0x00
DEVICE_TYPE_GENERIC_GPS: Final = 0x0F
DEVICE_TYPE_STRIDE: Final = 0x0D
DEVICE_TYPE_ASSET_TRACKER: Final = 0x29
DEVICE_TYPE_TEMPERATURE: Final = 0x30
DEVICE_TYPE_HEART_RATE: Final = 0x78
DEVICE_TYPE_DOG_COLLAR: Final = 0x79
DEVICE_TYPE_BIKE_SPEED: Final = 0x7B
DEVICE_TYPE_BIKE_SPEED_CADENCE: Final = 0x7C
TRANSMISSION_TYPE_WILDCARD: Final = 0x00
DEVICE_NUMBER_WILDCARD: Final = 0x0000

# Asset tracker pages
PAGE_LOCATION_1: Final = 0x01
PAGE_LOCATION_2: Final = 0x02
PAGE_NO_ASSETS: Final = 0x03
PAGE_IDENTIFICATION_1: Final = 0x10
PAGE_IDENTIFICATION_2: Final = 0x11
PAGE_DISCONNECT: Final = 0x20

# Common pages
PAGE_REQUEST: Final = 0x46
PAGE_MANUFACTURER_IDENT: Final = 0x50
PAGE_PRODUCT_INFO: Final = 0x51
PAGE_BATTERY_STATUS: Final = 0x52

# Request data page command
REQUEST_RESERVED: Final = 0xFF
REQUEST_TRANSMIT_ONCE: Final = 0x01
REQUEST_COMMAND_SINGLE_PAGE: Final = 0x01
REQUEST_COMMAND_PAGE_SET: Final = 0x04
SUPPLEMENTARY_PAGES: Final = (PAGE_MANUFACTURER_IDENT, PAGE_PRODUCT_INFO, PAGE_BATTERY_STATUS)
IDENTIFICATION_PAGES: Final = (PAGE_IDENTIFICATION_1, PAGE_IDENTIFICATION_2)

# Heart rate
HR_PAGE_MASK: Final = 0x7F
HR_MIN_PLAUSIBLE_BPM: Final = 30
HR_MAX_PLAUSIBLE_BPM: Final = 220

# Network and radio
USER_NETWORK_NUM: Final = 0
ANT_PLUS_NETWORK_KEY: Final = bytes((0xB9, 0xA5, 0x21, 0xFB, 0xBD, 0x72, 0xC3, 0x45))
USER_CHANNEL_RF_FREQ: Final = 57
CHANNEL_TYPE_SLAVE: Final = 0x00
MAX_CHANNELS: Final = 8
MAX_SEARCH_CHANNELS: Final = 2

# Timing
MESSAGE_TIMEOUT_MS: Final = 1000
IDLE_REPORT_SECONDS: Final = 5
IDLE_SLEEP_SECONDS: Final = 0.1
RESET_SETTLE_SECONDS: Final = 0.5
STARTUP_WAIT_ATTEMPTS: Final = 10
REQUEST_MAX_ATTEMPTS: Final = 5
REQUEST_BACKOFF_SECONDS: Final = 0.1

# Semicircle and bradian scales
SEMICIRCLE_SCALE: Final = 180.0 / 2**31
BRADIANS_PER_TURN: Final = 256
DISTANCE_UNKNOWN: Final = 0xFFFF
STATUS_UNDEFINED: Final = 0xFF
