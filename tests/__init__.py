"""Test suite for adapter_relay."""
