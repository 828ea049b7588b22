"""Affiliates module: referral codes, commission ledger and payouts"""
