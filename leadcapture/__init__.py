"""Lead capture: AI-assisted intake conversations that end in a scored, submitted lead."""
