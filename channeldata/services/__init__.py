"""Query planning, execution and rollup maintenance services."""
