"""Ebook catalogue module"""
