"""Shared helpers: token signing, clock, logging, errors"""
