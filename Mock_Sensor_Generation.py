#This program creates realistic temperature/humidity readings with normal statistical distributions.
#Every 30 readings, the last 5 are a heat spike above the alert threshold so the webhook can be exercised.

import random


class MockSensorGenerator:
    """Generates DHT22-style readings using normal distributions."""

    def __init__(self, cycle_length=30, spike_length=5):
        self.sequence = 0
        self.cycle_length = cycle_length
        self.spike_length = spike_length

        self.sensor_params = {
            "temperature": {"mean": 24.0, "stddev": 1.5},   # Indoor comfort range
            "humidity": {"mean": 55.0, "stddev": 7.0},      # Moderate humidity
        }
        self.spike_range = (30.5, 35.0)

    def _clamp(self, value, min_val, max_val):
        """Clamp value to acceptable range."""
        return max(min_val, min(max_val, value))

    def in_spike(self):
        """True while the current reading falls in the heat spike window."""
        position = (self.sequence - 1) % self.cycle_length
        return position >= self.cycle_length - self.spike_length

    def _temperature(self):
        if self.in_spike():
            return round(random.uniform(*self.spike_range), 1)
        params = self.sensor_params["temperature"]
        return round(self._clamp(random.gauss(params["mean"], params["stddev"]), 18.0, 29.5), 1)

    def _humidity(self):
        params = self.sensor_params["humidity"]
        return round(self._clamp(random.gauss(params["mean"], params["stddev"]), 20.0, 95.0), 1)

    def generate(self):
        """Generate one reading payload as the device would POST it."""
        self.sequence += 1

        return {
            "temperature": self._temperature(),
            "humidity": self._humidity(),
        }
