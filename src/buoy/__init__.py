"""Buoy package"""
