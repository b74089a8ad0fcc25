"""Payload encoding, remote commands, battery estimation, time keeping and SPI framing for a LoRaWAN people counter."""

__version__ = "0.1.0"