"""Bundle engine: pending bundle state, fork sessions, dispatch and submission."""
