"""MQTT publish sink for decoded events."""
