from notelog.pipeline.main import main

raise SystemExit(main())
