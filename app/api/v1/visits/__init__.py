"""Referral visit log module"""
