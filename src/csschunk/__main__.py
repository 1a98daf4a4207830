from csschunk.cli import main

raise SystemExit(main())
