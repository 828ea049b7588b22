"""Payments module: gateway client, verification workflow and webhooks"""
