"""HTTP surface for the pricing agent."""
