"""Device MQTT transport."""
