"""LuckyPay web dashboard"""
