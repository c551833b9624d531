"""Instruction model, operand stack and bytecode decoding."""
