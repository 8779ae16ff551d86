"""fleetsim: an HTTP test double simulating a flaky fleet of remote sensors."""

__version__ = "0.1.0"
