"""LinearVue: linear broadcast channels scheduled from an on-demand library."""

__version__ = "0.1.0"
