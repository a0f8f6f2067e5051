"""Build, run, verify and diagnose the bank application container stack.

The stack is a Spring Boot application image and a MySQL container joined
over a user-defined bridge network.
"""

__version__ = "0.1.0"
