"""Configuration for repocache."""
