from chatload.cli import main

raise SystemExit(main())
