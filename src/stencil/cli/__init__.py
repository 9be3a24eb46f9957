"""Stencil command line interface"""
