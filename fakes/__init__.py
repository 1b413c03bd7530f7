"""Test doubles for the lidar driver process and host collaborators."""
